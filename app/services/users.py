# app/services/users.py
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import select, delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..errors import ValidationError, NotFound, Conflict, Forbidden
from ..models.favorite import Favorite
from ..models.subscription import Subscription
from ..models.user import User, AdminPermission, ROLES, ADMIN_ROLES, ROLE_USER, ROLE_ADMIN
from ..models.vehicle import Vehicle
from ..utils.clock import iso
from .listings import purge_listings

logger = logging.getLogger(__name__)


def normalize_email(raw: Any) -> str:
    return str(raw or "").strip().lower()


def user_to_public(u: User) -> Dict[str, Any]:
    return {
        "id": u.id,
        "name": u.name,
        "email": u.email,
        "phone": u.phone,
        "role": u.role,
        "is_blocked": bool(u.is_blocked),
        "last_login": iso(u.last_login),
        "created_at": iso(u.created_at),
        "updated_at": iso(u.updated_at),
    }


def get_user(db: Session, user_id: str) -> User:
    u = db.get(User, user_id)
    if not u:
        raise NotFound("Пользователь не найден")
    return u


def find_by_email(db: Session, email: str) -> Optional[User]:
    return db.execute(select(User).where(User.email == normalize_email(email))).scalar_one_or_none()


def list_users(db: Session) -> List[User]:
    return db.execute(
        select(User).where(User.role == ROLE_USER).order_by(User.created_at.desc())
    ).scalars().all()


def list_admins(db: Session) -> List[User]:
    return db.execute(
        select(User).where(User.role.in_(ADMIN_ROLES)).order_by(User.created_at.desc())
    ).scalars().all()


def _commit_account(db: Session, u: User) -> User:
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise Conflict("Пользователь с таким email уже существует")
    db.refresh(u)
    return u


# ---------- создание ----------
def create_user(db: Session, payload: Dict[str, Any], allowed_roles=ROLES) -> User:
    name = str(payload.get("name") or "").strip()
    email = normalize_email(payload.get("email"))
    role = str(payload.get("role") or ROLE_USER).strip().lower()
    if not name:
        raise ValidationError("name", "Укажите имя")
    if not email or "@" not in email:
        raise ValidationError("email", "Некорректный email")
    if role not in allowed_roles:
        raise ValidationError("role", f"Роль должна быть одной из: {', '.join(allowed_roles)}")
    if find_by_email(db, email):
        raise Conflict("Пользователь с таким email уже существует")

    u = User(
        name=name,
        email=email,
        phone=(str(payload.get("phone") or "").strip() or None),
        role=role,
        is_blocked=bool(payload.get("is_blocked", False)),
    )
    db.add(u)
    u = _commit_account(db, u)
    logger.info("Account %s created with role %s", u.id, u.role)
    return u


def create_admin(db: Session, actor: User, payload: Dict[str, Any]) -> User:
    if not actor.is_superadmin:
        raise Forbidden("Создавать администраторов может только суперадмин")
    return create_user(db, {**payload, "role": payload.get("role") or ROLE_ADMIN}, allowed_roles=ADMIN_ROLES)


# ---------- пользователи (role == user) ----------
def _plain_user(db: Session, user_id: str) -> User:
    u = get_user(db, user_id)
    if u.role != ROLE_USER:
        raise Forbidden("Учётные записи администраторов меняются через раздел администраторов")
    return u


def update_user(db: Session, actor: User, user_id: str, payload: Dict[str, Any]) -> User:
    u = _plain_user(db, user_id)
    name = str(payload.get("name") or "").strip()
    email = normalize_email(payload.get("email"))
    if email:
        if "@" not in email:
            raise ValidationError("email", "Некорректный email")
        other = find_by_email(db, email)
        if other and other.id != u.id:
            raise Conflict("Пользователь с таким email уже существует")
    if payload.get("is_blocked") is not None and u.id == actor.id:
        raise Forbidden("Нельзя заблокировать самого себя")

    if name:
        u.name = name
    if email:
        u.email = email
    if payload.get("phone") is not None:
        u.phone = str(payload["phone"]).strip() or None
    if payload.get("is_blocked") is not None:
        u.is_blocked = bool(payload["is_blocked"])
    return _commit_account(db, u)


def _set_block(db: Session, actor: User, u: User, blocked: Optional[bool]) -> User:
    if u.id == actor.id:
        raise Forbidden("Нельзя заблокировать самого себя")
    u.is_blocked = (not u.is_blocked) if blocked is None else bool(blocked)
    db.commit()
    db.refresh(u)
    logger.info("Account %s blocked=%s by %s", u.id, u.is_blocked, actor.id)
    return u


def set_user_block(db: Session, actor: User, user_id: str, blocked: Optional[bool] = None) -> User:
    """blocked=None: переключить."""
    return _set_block(db, actor, _plain_user(db, user_id), blocked)


def delete_user(db: Session, actor: User, user_id: str) -> None:
    u = _plain_user(db, user_id)
    if u.id == actor.id:
        raise Forbidden("Нельзя удалить самого себя")
    purge_user(db, u.id)


# ---------- администраторы ----------
def _admin_target(db: Session, actor: User, admin_id: str) -> User:
    u = get_user(db, admin_id)
    if u.role not in ADMIN_ROLES:
        raise ValidationError("admin_id", "Пользователь не является администратором")
    if u.is_superadmin and not actor.is_superadmin:
        raise Forbidden("Суперадмина может менять только суперадмин")
    return u


def set_admin_block(db: Session, actor: User, admin_id: str, blocked: Optional[bool] = None) -> User:
    u = _admin_target(db, actor, admin_id)
    return _set_block(db, actor, u, blocked)


def delete_admin(db: Session, actor: User, admin_id: str) -> None:
    if admin_id == actor.id:
        raise Forbidden("Нельзя удалить самого себя")
    u = _admin_target(db, actor, admin_id)
    purge_user(db, u.id)


# ---------- каскадное удаление ----------
def purge_user(db: Session, user_id: str) -> None:
    """Объявления (с избранным и картинками), избранное, подписки, права и сам аккаунт одной транзакцией."""
    try:
        vehicle_ids = db.execute(select(Vehicle.id).where(Vehicle.user_id == user_id)).scalars().all()
        purge_listings(db, list(vehicle_ids))
        db.execute(delete(Favorite).where(Favorite.user_id == user_id))
        db.execute(delete(Subscription).where(Subscription.user_id == user_id))
        db.execute(delete(AdminPermission).where(AdminPermission.admin_id == user_id))
        db.execute(delete(User).where(User.id == user_id))
        db.commit()
    except Exception:
        db.rollback()
        raise
    logger.info("Account %s deleted with %d listing(s)", user_id, len(vehicle_ids))
