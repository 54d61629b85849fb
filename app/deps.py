# app/deps.py
from __future__ import annotations

from typing import Optional

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.orm import Session

from .config import settings
from .db import get_db
from .errors import Unavailable
from .models.user import User
from .services import features as feature_flags
from .utils.security import decode_jwt


# ------------------ Токен ------------------

def _extract_token(request: Request, authorization: Optional[str]) -> Optional[str]:
    # 1) заголовок Authorization: Bearer <jwt>
    if authorization:
        scheme, _, value = authorization.partition(" ")
        if scheme.lower() == "bearer" and value.strip():
            return value.strip()
    # 2) кука
    return request.cookies.get(settings.COOKIE_NAME) or None


def get_optional_user(
    request: Request,
    authorization: Optional[str] = Header(None),
    db: Session = Depends(get_db),
) -> Optional[User]:
    token = _extract_token(request, authorization)
    if not token:
        return None

    data = decode_jwt(token)
    if not data:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or expired token")

    user = db.get(User, str(data["sub"]))
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")
    if user.is_blocked:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account is blocked")
    return user


def get_current_user(user: Optional[User] = Depends(get_optional_user)) -> User:
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required")
    return user


# ------------------ Режим обслуживания ------------------

def ensure_not_maintenance(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> User:
    """Во время техработ пользовательские изменения закрыты, админы работают как обычно."""
    if not user.is_admin:
        flags = feature_flags.get_features(db)
        if flags["maintenance_mode"]:
            raise Unavailable(flags["maintenance_message"])
    return user
