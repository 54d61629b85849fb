# app/services/permissions.py
from __future__ import annotations

import logging
from typing import Any, Dict, List

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..errors import ValidationError, Forbidden
from ..models.user import User, AdminPermission, ROLE_ADMIN
from .users import get_user, list_admins

logger = logging.getLogger(__name__)

AVAILABLE_FEATURES = (
    "user_management",
    "vehicle_management",
    "settings_management",
    "payment_management",
)
ACTIONS = ("access", "create", "edit", "delete")


def _default_entry(admin_id: str, feature: str) -> Dict[str, Any]:
    return {
        "id": None,
        "admin_id": admin_id,
        "feature": feature,
        "can_access": False,
        "can_create": False,
        "can_edit": False,
        "can_delete": False,
    }


def has_permission(db: Session, user: User, feature: str, action: str = "access") -> bool:
    if user.is_superadmin:
        return True
    if not user.is_admin:
        return False
    row = db.execute(
        select(AdminPermission).where(AdminPermission.admin_id == user.id, AdminPermission.feature == feature)
    ).scalar_one_or_none()
    return bool(row and getattr(row, f"can_{action}", False))


def permissions_for(db: Session, user: User) -> List[Dict[str, Any]]:
    # суперадмину таблица не нужна, у обычных пользователей прав нет
    if user.role != ROLE_ADMIN:
        return []
    rows = db.execute(
        select(AdminPermission).where(AdminPermission.admin_id == user.id).order_by(AdminPermission.feature)
    ).scalars().all()
    return [r.to_dict() for r in rows]


def list_permissions(db: Session) -> List[Dict[str, Any]]:
    admins = [a for a in list_admins(db) if a.role == ROLE_ADMIN]
    rows = db.execute(select(AdminPermission)).scalars().all()
    by_key = {(r.admin_id, r.feature): r for r in rows}
    out = []
    for a in admins:
        for feature in AVAILABLE_FEATURES:
            row = by_key.get((a.id, feature))
            item = row.to_dict() if row else _default_entry(a.id, feature)
            item["admin_name"] = a.name
            item["admin_email"] = a.email
            out.append(item)
    return out


def set_permission(db: Session, actor: User, payload: Dict[str, Any]) -> AdminPermission:
    if not actor.is_superadmin:
        raise Forbidden("Права выдаёт только суперадмин")
    admin_id = str(payload.get("admin_id") or "").strip()
    feature = str(payload.get("feature") or "").strip()
    if not admin_id:
        raise ValidationError("admin_id", "Укажите администратора")
    if feature not in AVAILABLE_FEATURES:
        raise ValidationError("feature", f"Неизвестный раздел: {feature}")
    target = get_user(db, admin_id)
    if target.role != ROLE_ADMIN:
        raise ValidationError("admin_id", "Права назначаются только обычным администраторам")

    row = db.execute(
        select(AdminPermission).where(AdminPermission.admin_id == admin_id, AdminPermission.feature == feature)
    ).scalar_one_or_none()
    if row is None:
        row = AdminPermission(admin_id=admin_id, feature=feature)
        db.add(row)
    for action in ACTIONS:
        setattr(row, f"can_{action}", bool(payload.get(f"can_{action}", False)))
    db.commit()
    db.refresh(row)
    logger.info("Permissions for %s on %s updated by %s", admin_id, feature, actor.id)
    return row
