# app/utils/security.py
import time
from typing import Optional

from jose import jwt, JWTError

from ..config import settings


def create_jwt(payload: dict, ttl_sec: Optional[int] = None) -> str:
    exp = int(time.time()) + (ttl_sec if ttl_sec is not None else settings.JWT_TTL_SEC)
    return jwt.encode({**payload, "exp": exp}, settings.SECRET_KEY, algorithm=settings.JWT_ALG)


def token_for_user(user) -> str:
    # sub: id пользователя; роль и блокировку всё равно читаем из базы
    return create_jwt({"sub": str(user.id), "role": user.role})


def decode_jwt(token: str) -> Optional[dict]:
    """Payload токена или None, если подпись/срок не сошлись или нет sub."""
    try:
        data = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.JWT_ALG])
    except JWTError:
        return None
    return data if data.get("sub") else None
