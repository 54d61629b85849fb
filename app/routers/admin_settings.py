# app/routers/admin_settings.py
from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..db import get_db
from ..models.user import User
from ..admin.security import require_admin, require_permission, require_superadmin
from ..services import features, permissions

router = APIRouter(prefix="/api/admin", tags=["admin-settings"])

SETTINGS = "settings_management"


# ---------- Флаги ----------
@router.get("/settings")
def admin_settings(_: User = Depends(require_permission(SETTINGS)), db: Session = Depends(get_db)):
    return {"ok": True, "features": features.get_features(db)}


@router.put("/settings")
def admin_settings_update(
    payload: dict,
    _: User = Depends(require_permission(SETTINGS, "edit")),
    db: Session = Depends(get_db),
):
    return {"ok": True, "features": features.update_features(db, payload)}


# ---------- Права администраторов ----------
@router.get("/permissions")
def admin_permissions(_: User = Depends(require_superadmin), db: Session = Depends(get_db)):
    return {
        "ok": True,
        "features": list(permissions.AVAILABLE_FEATURES),
        "items": permissions.list_permissions(db),
    }


@router.get("/permissions/me")
def admin_my_permissions(user: User = Depends(require_admin), db: Session = Depends(get_db)):
    return {
        "ok": True,
        "is_superadmin": user.is_superadmin,
        "items": permissions.permissions_for(db, user),
    }


@router.post("/permissions")
def admin_permission_set(
    payload: dict,
    actor: User = Depends(require_superadmin),
    db: Session = Depends(get_db),
):
    row = permissions.set_permission(db, actor, payload)
    return {"ok": True, "permission": row.to_dict()}
