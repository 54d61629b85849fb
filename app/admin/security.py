# app/admin/security.py
from fastapi import Depends, HTTPException, status
from sqlalchemy.orm import Session

from ..db import get_db
from ..deps import get_current_user
from ..models.user import User, ADMIN_ROLES
from ..services.permissions import has_permission


def is_admin_user(user) -> bool:
    """Админ: роль admin или superadmin и учётка не заблокирована."""
    role = (getattr(user, "role", "") or "").lower()
    return role in ADMIN_ROLES and not getattr(user, "is_blocked", False)


def require_admin(user: User = Depends(get_current_user)) -> User:
    if not is_admin_user(user):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="admin only")
    return user


def require_superadmin(user: User = Depends(require_admin)) -> User:
    if not user.is_superadmin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="superadmin only")
    return user


def require_permission(feature: str, action: str = "access"):
    """
    Зависимость для раздела админки: суперадмин проходит всегда,
    админу нужна соответствующая галочка в admin_permissions.
    """
    def _dep(user: User = Depends(require_admin), db: Session = Depends(get_db)) -> User:
        if not has_permission(db, user, feature, action):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"no {action} permission for {feature}",
            )
        return user
    return _dep
