# app/routers/admin.py
from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..db import get_db
from ..models.user import User
from ..admin.security import require_permission, require_superadmin
from ..services import users

router = APIRouter(prefix="/api/admin", tags=["admin"])

USERS = "user_management"


# ---------- Пользователи ----------
@router.get("/users")
def admin_users(_: User = Depends(require_permission(USERS)), db: Session = Depends(get_db)):
    return {"ok": True, "items": [users.user_to_public(u) for u in users.list_users(db)]}


@router.get("/users/{user_id}")
def admin_user_get(user_id: str, _: User = Depends(require_permission(USERS)), db: Session = Depends(get_db)):
    return {"ok": True, "user": users.user_to_public(users.get_user(db, user_id))}


@router.post("/users", status_code=201)
def admin_user_create(
    payload: dict,
    _: User = Depends(require_permission(USERS, "create")),
    db: Session = Depends(get_db),
):
    # через этот раздел заводятся только обычные пользователи
    u = users.create_user(db, {**payload, "role": "user"})
    return {"ok": True, "user": users.user_to_public(u)}


@router.put("/users/{user_id}")
def admin_user_update(
    user_id: str,
    payload: dict,
    actor: User = Depends(require_permission(USERS, "edit")),
    db: Session = Depends(get_db),
):
    u = users.update_user(db, actor, user_id, payload)
    return {"ok": True, "user": users.user_to_public(u)}


@router.post("/users/{user_id}/block")
def admin_user_block(
    user_id: str,
    payload: dict | None = None,
    actor: User = Depends(require_permission(USERS, "edit")),
    db: Session = Depends(get_db),
):
    # без тела переключаем, {"is_blocked": true/false} выставляет явно
    blocked = (payload or {}).get("is_blocked")
    u = users.set_user_block(db, actor, user_id, blocked)
    return {"ok": True, "id": u.id, "is_blocked": u.is_blocked}


@router.delete("/users/{user_id}")
def admin_user_delete(
    user_id: str,
    actor: User = Depends(require_permission(USERS, "delete")),
    db: Session = Depends(get_db),
):
    users.delete_user(db, actor, user_id)
    return {"ok": True, "deleted": user_id}


# ---------- Администраторы ----------
@router.get("/admins")
def admin_admins(_: User = Depends(require_permission(USERS)), db: Session = Depends(get_db)):
    return {"ok": True, "items": [users.user_to_public(u) for u in users.list_admins(db)]}


@router.post("/admins", status_code=201)
def admin_admin_create(
    payload: dict,
    actor: User = Depends(require_superadmin),
    db: Session = Depends(get_db),
):
    u = users.create_admin(db, actor, payload)
    return {"ok": True, "user": users.user_to_public(u)}


@router.post("/admins/{admin_id}/block")
def admin_admin_block(
    admin_id: str,
    payload: dict | None = None,
    actor: User = Depends(require_permission(USERS, "edit")),
    db: Session = Depends(get_db),
):
    blocked = (payload or {}).get("is_blocked")
    u = users.set_admin_block(db, actor, admin_id, blocked)
    return {"ok": True, "id": u.id, "is_blocked": u.is_blocked}


@router.delete("/admins/{admin_id}")
def admin_admin_delete(
    admin_id: str,
    actor: User = Depends(require_permission(USERS, "delete")),
    db: Session = Depends(get_db),
):
    users.delete_admin(db, actor, admin_id)
    return {"ok": True, "deleted": admin_id}
