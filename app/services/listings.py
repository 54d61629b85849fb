# app/services/listings.py
"""
Объявления о продаже транспорта и их модерация.

Статусы: pending -> approved / rejected. Владелец может менять и удалять
объявление только пока оно на модерации. Админ выставляет любой статус из
любого (в том числе возвращает rejected в approved); approved_at ставится
при первом одобрении и дальше не трогается.

Если у владельца есть действующая подписка с остатком публикаций,
новое объявление становится премиальным, а остаток уменьшается на 1
в той же транзакции, что и вставка объявления.
"""
from __future__ import annotations

import logging
import math
import datetime as dt
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import select, delete, func, or_
from sqlalchemy.orm import Session

from ..config import settings
from ..errors import ValidationError, NotFound, InvalidState, Forbidden
from ..models.favorite import Favorite
from ..models.user import User
from ..models.vehicle import Vehicle, VehicleImage, ListingStatus, VehicleCondition
from ..utils.clock import utcnow, iso
from ..utils.documents import dump_images, dump_contact, merge_contact, normalize_contact, CONTACT_FIELDS
from . import subscriptions

logger = logging.getLogger(__name__)

MIN_YEAR = 1900
_REQUIRED_TEXT = ("title", "brand", "model", "description")
_OPTIONAL_TEXT = {"type": "car", "fuel_type": "petrol", "transmission": "manual"}


# ---------- разбор входных данных ----------
def parse_status(raw: Any) -> ListingStatus:
    if isinstance(raw, ListingStatus):
        return raw
    try:
        return ListingStatus(str(raw or "").strip().lower())
    except ValueError:
        raise ValidationError("status", f"Неизвестный статус: {raw}")


def _text(payload: Dict[str, Any], field: str) -> str:
    value = payload.get(field)
    return str(value).strip() if value is not None else ""


def _year(raw: Any) -> int:
    try:
        year = int(raw)
    except (TypeError, ValueError, OverflowError):
        raise ValidationError("year", "Год выпуска должен быть числом")
    max_year = utcnow().year + 1
    if not MIN_YEAR <= year <= max_year:
        raise ValidationError("year", f"Год выпуска должен быть от {MIN_YEAR} до {max_year}")
    return year


def _price(raw: Any) -> float:
    try:
        price = float(raw)
    except (TypeError, ValueError):
        raise ValidationError("price", "Цена должна быть числом")
    if not math.isfinite(price) or price <= 0:
        raise ValidationError("price", "Цена должна быть больше нуля")
    return price


def _mileage(raw: Any) -> int:
    try:
        mileage = int(raw)
    except (TypeError, ValueError, OverflowError):
        raise ValidationError("mileage", "Пробег должен быть числом")
    if mileage < 0:
        raise ValidationError("mileage", "Пробег не может быть отрицательным")
    return mileage


def _condition(raw: Any) -> str:
    value = str(raw or "").strip().upper()
    try:
        return VehicleCondition(value).value
    except ValueError:
        allowed = ", ".join(c.value for c in VehicleCondition)
        raise ValidationError("condition", f"Состояние должно быть одним из: {allowed}")


def _images(raw: Any) -> List[str]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ValidationError("images", "images должен быть списком ссылок")
    return [str(x).strip() for x in raw if x is not None and str(x).strip()]


def validate_create(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Проверяет новое объявление и возвращает значения колонок."""
    data: Dict[str, Any] = {}
    for field in _REQUIRED_TEXT:
        value = _text(payload, field)
        if not value:
            raise ValidationError(field, f"Поле {field} обязательно")
        data[field] = value
    for field, default in _OPTIONAL_TEXT.items():
        data[field] = _text(payload, field).lower() or default

    data["year"] = _year(payload.get("year"))
    data["price"] = _price(payload.get("price"))
    mileage = payload.get("mileage")
    data["mileage"] = _mileage(mileage) if mileage not in (None, "") else 0
    data["condition"] = _condition(payload.get("condition") or VehicleCondition.USED.value)

    contact = normalize_contact(payload.get("contact_info"))
    for field in CONTACT_FIELDS:
        if not contact[field]:
            raise ValidationError(f"contact_info.{field}", f"Укажите контакт: {field}")
    data["contact_info"] = dump_contact(contact)
    data["images"] = dump_images(_images(payload.get("images")))
    return data


def _validate_patch(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Частичное обновление: пустые и отсутствующие поля не меняются."""
    patch: Dict[str, Any] = {}
    for field in _REQUIRED_TEXT:
        value = _text(payload, field)
        if value:
            patch[field] = value
    for field in _OPTIONAL_TEXT:
        value = _text(payload, field)
        if value:
            patch[field] = value.lower()
    if payload.get("year") not in (None, ""):
        patch["year"] = _year(payload["year"])
    if payload.get("price") not in (None, ""):
        patch["price"] = _price(payload["price"])
    if payload.get("mileage") not in (None, ""):
        patch["mileage"] = _mileage(payload["mileage"])
    if payload.get("condition") not in (None, ""):
        patch["condition"] = _condition(payload["condition"])
    images = _images(payload.get("images"))
    if images:
        patch["images"] = images
    if isinstance(payload.get("contact_info"), dict):
        patch["contact_info"] = payload["contact_info"]
    return patch


def _apply_patch(v: Vehicle, patch: Dict[str, Any]) -> None:
    for field, value in patch.items():
        if field == "images":
            v.images = dump_images(value)
        elif field == "contact_info":
            v.contact_info = dump_contact(merge_contact(v.contact, value))
        else:
            setattr(v, field, value)


def _apply_status(v: Vehicle, status: ListingStatus, now: dt.datetime) -> None:
    v.status = status
    # повторное одобрение дату первого не перезаписывает
    if status == ListingStatus.APPROVED and v.approved_at is None:
        v.approved_at = now


# ---------- проекция ----------
def to_public(
    v: Vehicle,
    requester: Optional[User] = None,
    premium_users: Iterable[str] = (),
    expose_email: bool = False,
) -> Dict[str, Any]:
    owner = v.owner
    show_email = expose_email or (
        requester is not None and (requester.id == v.user_id or requester.is_admin)
    )
    return {
        "id": v.id,
        "title": v.title,
        "brand": v.brand,
        "model": v.model,
        "year": v.year,
        "price": float(v.price) if v.price is not None else None,
        "type": v.type,
        "fuel_type": v.fuel_type,
        "transmission": v.transmission,
        "condition": v.condition,
        "mileage": v.mileage,
        "description": v.description,
        "images": v.image_list,
        "contact_info": v.contact,
        "status": v.status.value,
        "user_id": v.user_id,
        "is_premium": bool(v.is_premium),
        "is_premium_user": v.user_id in set(premium_users),
        "approved_at": iso(v.approved_at),
        "created_at": iso(v.created_at),
        "updated_at": iso(v.updated_at),
        "user": {
            "id": owner.id,
            "name": owner.name,
            "email": owner.email if show_email else None,
        } if owner else None,
    }


def project(
    db: Session,
    vehicles: List[Vehicle],
    requester: Optional[User] = None,
    expose_email: bool = False,
) -> List[Dict[str, Any]]:
    premium = subscriptions.premium_user_ids(db, (v.user_id for v in vehicles))
    return [to_public(v, requester, premium, expose_email) for v in vehicles]


# ---------- чтение ----------
def list_listings(
    db: Session,
    filters: Dict[str, Any],
    page: int = 1,
    limit: Optional[int] = None,
    requester: Optional[User] = None,
    admin_view: bool = False,
) -> Tuple[List[Vehicle], int]:
    conds = []
    status = parse_status(filters["status"]) if filters.get("status") else None

    if filters.get("my_posts"):
        if requester is None:
            raise Forbidden("Нужна авторизация")
        conds.append(Vehicle.user_id == requester.id)
        if status:
            conds.append(Vehicle.status == status)
    elif admin_view:
        if status:
            conds.append(Vehicle.status == status)
    elif status and requester is not None and requester.is_admin:
        conds.append(Vehicle.status == status)
    else:
        # всем остальным только одобренные
        conds.append(Vehicle.status == ListingStatus.APPROVED)

    search = (filters.get("search") or "").strip()
    if search:
        like = f"%{search}%"
        conds.append(or_(
            Vehicle.title.ilike(like),
            Vehicle.brand.ilike(like),
            Vehicle.model.ilike(like),
            Vehicle.description.ilike(like),
        ))
    for field in ("type", "fuel_type", "transmission"):
        value = (filters.get(field) or "").strip().lower()
        if value:
            conds.append(getattr(Vehicle, field) == value)
    if filters.get("min_price") is not None:
        conds.append(Vehicle.price >= filters["min_price"])
    if filters.get("max_price") is not None:
        conds.append(Vehicle.price <= filters["max_price"])
    if filters.get("min_year") is not None:
        conds.append(Vehicle.year >= filters["min_year"])
    if filters.get("max_year") is not None:
        conds.append(Vehicle.year <= filters["max_year"])

    total = db.execute(select(func.count(Vehicle.id)).where(*conds)).scalar_one()

    page = max(int(page or 1), 1)
    limit = min(max(int(limit or settings.LISTINGS_DEFAULT_LIMIT), 1), settings.LISTINGS_MAX_LIMIT)
    rows = db.execute(
        select(Vehicle)
        .where(*conds)
        .order_by(
            Vehicle.created_at.desc(),
            Vehicle.is_premium.desc(),
            Vehicle.approved_at.desc().nulls_last(),
            Vehicle.id.desc(),
        )
        .offset((page - 1) * limit)
        .limit(limit)
    ).scalars().all()
    return rows, total


def get_listing(db: Session, vehicle_id: int, requester: Optional[User] = None) -> Vehicle:
    v = db.get(Vehicle, vehicle_id)
    if not v:
        raise NotFound("Объявление не найдено")
    if v.status != ListingStatus.APPROVED:
        # неодобренные видят только владелец и админы
        if requester is None or (requester.id != v.user_id and not requester.is_admin):
            raise NotFound("Объявление не найдено")
    return v


# ---------- создание ----------
def create_listing(
    db: Session,
    owner_id: str,
    payload: Dict[str, Any],
    status: ListingStatus = ListingStatus.PENDING,
) -> Vehicle:
    data = validate_create(payload)
    if not db.get(User, owner_id):
        raise NotFound("Пользователь не найден")

    now = utcnow()
    try:
        sub = subscriptions.get_usable_subscription(db, owner_id, now)
        is_premium = sub is not None and subscriptions.consume_post_credit(db, sub.id)
        v = Vehicle(
            user_id=owner_id,
            status=status,
            is_premium=is_premium,
            created_at=now,
            updated_at=now,
            **data,
        )
        _apply_status(v, status, now)
        db.add(v)
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(v)
    logger.info("Listing %s created by %s (premium=%s, status=%s)", v.id, owner_id, is_premium, status.value)
    return v


# ---------- владелец ----------
def _owned_pending(db: Session, vehicle_id: int, requester_id: str) -> Vehicle:
    v = db.execute(
        select(Vehicle).where(Vehicle.id == vehicle_id, Vehicle.user_id == requester_id)
    ).scalar_one_or_none()
    if not v:
        raise NotFound("Объявление не найдено")
    if v.status != ListingStatus.PENDING:
        raise InvalidState("Изменять можно только объявления на модерации")
    return v


def update_listing(db: Session, vehicle_id: int, payload: Dict[str, Any], requester_id: str) -> Vehicle:
    v = _owned_pending(db, vehicle_id, requester_id)
    patch = _validate_patch(payload)
    _apply_patch(v, patch)
    v.updated_at = utcnow()
    db.commit()
    db.refresh(v)
    return v


def purge_listings(db: Session, vehicle_ids: List[int]) -> None:
    """Удаляет объявления с избранным и картинками. Коммит за вызывающим."""
    if not vehicle_ids:
        return
    db.execute(delete(Favorite).where(Favorite.vehicle_id.in_(vehicle_ids)))
    db.execute(delete(VehicleImage).where(VehicleImage.vehicle_id.in_(vehicle_ids)))
    db.execute(delete(Vehicle).where(Vehicle.id.in_(vehicle_ids)))


def delete_listing(db: Session, vehicle_id: int, requester_id: str) -> None:
    _owned_pending(db, vehicle_id, requester_id)
    try:
        purge_listings(db, [vehicle_id])
        db.commit()
    except Exception:
        db.rollback()
        raise
    logger.info("Listing %s deleted by owner %s", vehicle_id, requester_id)


# ---- Админ ----
def admin_set_status(db: Session, vehicle_id: int, status: Any) -> Vehicle:
    new_status = parse_status(status)
    v = db.get(Vehicle, vehicle_id)
    if not v:
        raise NotFound("Объявление не найдено")
    _apply_status(v, new_status, utcnow())
    db.commit()
    db.refresh(v)
    logger.info("Listing %s moved to %s", v.id, new_status.value)
    return v


def admin_bulk_set_status(db: Session, vehicle_ids: List[int], status: Any) -> List[int]:
    new_status = parse_status(status)
    if not vehicle_ids:
        return []
    now = utcnow()
    rows = db.execute(select(Vehicle).where(Vehicle.id.in_(vehicle_ids))).scalars().all()
    for v in rows:
        _apply_status(v, new_status, now)
    db.commit()
    logger.info("Bulk status %s for %d listing(s)", new_status.value, len(rows))
    return sorted(v.id for v in rows)


def admin_bulk_delete(db: Session, vehicle_ids: List[int]) -> List[int]:
    if not vehicle_ids:
        return []
    found = db.execute(select(Vehicle.id).where(Vehicle.id.in_(vehicle_ids))).scalars().all()
    try:
        purge_listings(db, list(found))
        db.commit()
    except Exception:
        db.rollback()
        raise
    logger.info("Bulk delete of %d listing(s)", len(found))
    return sorted(found)


def admin_delete_listing(db: Session, vehicle_id: int) -> None:
    if not db.get(Vehicle, vehicle_id):
        raise NotFound("Объявление не найдено")
    admin_bulk_delete(db, [vehicle_id])


def admin_create_listing(db: Session, actor: User, payload: Dict[str, Any]) -> Vehicle:
    owner_id = _text(payload, "user_id") or actor.id
    if not _images(payload.get("images")):
        raise ValidationError("images", "Нужна хотя бы одна фотография")
    status = parse_status(payload.get("status") or ListingStatus.APPROVED)
    # квота владельца списывается так же, как при обычной публикации
    return create_listing(db, owner_id, payload, status=status)


def admin_update_listing(db: Session, vehicle_id: int, payload: Dict[str, Any]) -> Vehicle:
    v = db.get(Vehicle, vehicle_id)
    if not v:
        raise NotFound("Объявление не найдено")
    patch = _validate_patch(payload)
    status = parse_status(payload["status"]) if payload.get("status") else None

    now = utcnow()
    _apply_patch(v, patch)
    if status is not None:
        _apply_status(v, status, now)
    v.updated_at = now
    db.commit()
    db.refresh(v)
    return v
