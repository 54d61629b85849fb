# app/services/subscriptions.py
"""
Подписки и тарифы.

Статус "expired" в базе не хранится: его считает effective_status() по end_date,
и все места, где нужно понять, действует ли подписка, ходят только через неё
(или через get_usable_subscription, который делает то же самое в SQL).
"""
from __future__ import annotations

import logging
import math
import secrets
import datetime as dt
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import select, update, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..errors import ValidationError, NotFound, Conflict, Forbidden
from ..models.subscription import Subscription, SubscriptionPlan, SubscriptionStatus
from ..models.user import User
from ..utils.clock import utcnow, add_months, iso
from ..utils.documents import load_features, dump_features
from . import features as feature_flags

logger = logging.getLogger(__name__)

DEFAULT_PAYMENT_METHOD = "card"


# ---------- статус ----------
def effective_status(sub: Subscription, now: Optional[dt.datetime] = None) -> str:
    """active / cancelled / expired. Отменённая остаётся отменённой даже после end_date."""
    now = now or utcnow()
    if sub.status == SubscriptionStatus.CANCELLED:
        return "cancelled"
    if sub.end_date <= now:
        return "expired"
    return "active"


def _usable_filter(now: dt.datetime):
    return (
        or_(Subscription.status == SubscriptionStatus.ACTIVE, Subscription.status.is_(None)),
        Subscription.end_date > now,
    )


def get_usable_subscription(db: Session, user_id: str, now: Optional[dt.datetime] = None) -> Optional[Subscription]:
    now = now or utcnow()
    return db.execute(
        select(Subscription)
        .where(Subscription.user_id == user_id, *_usable_filter(now))
        .order_by(Subscription.created_at.desc())
        .limit(1)
    ).scalars().first()


def premium_user_ids(db: Session, user_ids: Iterable[str]) -> set[str]:
    ids = {u for u in user_ids if u}
    if not ids:
        return set()
    now = utcnow()
    rows = db.execute(
        select(Subscription.user_id).where(
            Subscription.user_id.in_(ids),
            Subscription.status == SubscriptionStatus.ACTIVE,
            Subscription.end_date > now,
        ).distinct()
    ).scalars().all()
    return set(rows)


def _plan_by_type(db: Session, plan_type: str) -> Optional[SubscriptionPlan]:
    return db.execute(
        select(SubscriptionPlan)
        .where(SubscriptionPlan.plan_type == plan_type, SubscriptionPlan.is_active.is_(True))
        .order_by(SubscriptionPlan.price.asc(), SubscriptionPlan.id.asc())
        .limit(1)
    ).scalars().first()


def subscription_to_public(db: Session, sub: Subscription, now: Optional[dt.datetime] = None) -> Dict[str, Any]:
    plan = _plan_by_type(db, sub.plan_type)
    return {
        "id": sub.id,
        "user_id": sub.user_id,
        "plan_type": sub.plan_type,
        "plan_name": plan.name if plan else sub.plan_type,
        "plan_features": load_features(plan.features) if plan else [],
        "status": sub.status.value if sub.status else None,
        "effective_status": effective_status(sub, now),
        "start_date": iso(sub.start_date),
        "end_date": iso(sub.end_date),
        "price": float(sub.price or 0),
        "post_count": sub.post_count,
        "payment_method": sub.payment_method,
        "transaction_id": sub.transaction_id,
        "created_at": iso(sub.created_at),
        "cancelled_at": iso(sub.cancelled_at),
    }


def get_status(db: Session, user_id: str) -> Dict[str, Any]:
    now = utcnow()
    latest = db.execute(
        select(Subscription)
        .where(Subscription.user_id == user_id)
        .order_by(Subscription.created_at.desc())
        .limit(1)
    ).scalars().first()
    if not latest:
        return {"active": False, "subscription": None}
    active = latest.status == SubscriptionStatus.ACTIVE and latest.end_date > now
    return {"active": active, "subscription": subscription_to_public(db, latest, now)}


# ---------- покупка / отмена ----------
def purchase(
    db: Session,
    user_id: str,
    plan_id: Optional[int] = None,
    plan_type: Optional[str] = None,
    payment_method: Optional[str] = None,
    transaction_id: Optional[str] = None,
) -> Subscription:
    if not feature_flags.get_features(db)["pro_plan_activation"]:
        raise Forbidden("Покупка тарифов временно отключена")

    if plan_id is not None:
        plan = db.get(SubscriptionPlan, plan_id)
        if plan is not None and not plan.is_active:
            plan = None
    elif plan_type:
        plan = _plan_by_type(db, plan_type.strip().lower())
    else:
        raise ValidationError("plan_id", "Укажите тариф")
    if plan is None:
        raise NotFound("Тариф не найден")

    now = utcnow()
    if get_usable_subscription(db, user_id, now) is not None:
        raise Conflict("У вас уже есть активная подписка")

    # цена и количество публикаций копируются из тарифа на момент покупки
    sub = Subscription(
        id=f"sub-{int(now.timestamp() * 1000)}-{secrets.token_hex(4)}",
        user_id=user_id,
        plan_type=plan.plan_type,
        status=SubscriptionStatus.ACTIVE,
        start_date=now,
        end_date=add_months(now, 1),
        price=plan.price,
        post_count=plan.post_count,
        payment_method=(payment_method or "").strip() or DEFAULT_PAYMENT_METHOD,
        transaction_id=(transaction_id or "").strip() or f"txn-{int(now.timestamp() * 1000)}-{secrets.token_hex(4)}",
        created_at=now,
        updated_at=now,
    )
    db.add(sub)
    db.commit()
    db.refresh(sub)
    logger.info("Subscription %s purchased by %s (plan %s)", sub.id, user_id, plan.id)
    return sub


def cancel(db: Session, user_id: str) -> Subscription:
    now = utcnow()
    sub = db.execute(
        select(Subscription)
        .where(
            Subscription.user_id == user_id,
            Subscription.status == SubscriptionStatus.ACTIVE,
            Subscription.end_date > now,
        )
        .order_by(Subscription.created_at.desc())
        .limit(1)
    ).scalars().first()
    if not sub:
        raise NotFound("Активная подписка не найдена")
    sub.status = SubscriptionStatus.CANCELLED
    sub.cancelled_at = now
    db.commit()
    db.refresh(sub)
    logger.info("Subscription %s cancelled by owner", sub.id)
    return sub


# ---------- списание публикации ----------
def consume_post_credit(db: Session, subscription_id: str) -> bool:
    """
    Атомарно списывает одну публикацию. Коммит делает вызывающий код вместе
    со вставкой объявления. Возвращает False, если списывать уже нечего.
    """
    now = utcnow()
    res = db.execute(
        update(Subscription)
        .where(Subscription.id == subscription_id, Subscription.post_count > 0)
        .values(post_count=Subscription.post_count - 1, updated_at=now)
    )
    if res.rowcount != 1:
        return False
    # на нуле подписка закрывается
    db.execute(
        update(Subscription)
        .where(Subscription.id == subscription_id, Subscription.post_count <= 0)
        .values(status=SubscriptionStatus.CANCELLED, cancelled_at=now)
    )
    return True


# ---------- тарифы ----------
def list_plans(db: Session, active_only: bool = True) -> List[SubscriptionPlan]:
    q = select(SubscriptionPlan)
    if active_only:
        q = q.where(SubscriptionPlan.is_active.is_(True))
    return db.execute(
        q.order_by(SubscriptionPlan.plan_type.asc(), SubscriptionPlan.price.asc())
    ).scalars().all()


def _non_negative(payload: Dict[str, Any], field: str, cast):
    raw = payload.get(field)
    try:
        value = cast(raw)
    except (TypeError, ValueError, OverflowError):
        raise ValidationError(field, f"Некорректное значение поля {field}")
    if isinstance(value, float) and not math.isfinite(value):
        raise ValidationError(field, f"Некорректное значение поля {field}")
    if value < 0:
        raise ValidationError(field, f"Поле {field} не может быть отрицательным")
    return value


def _features_from(payload: Dict[str, Any]) -> List[str]:
    raw = payload.get("features")
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ValidationError("features", "features должен быть списком")
    return [str(x).strip() for x in raw if str(x).strip()]


def _commit_plan(db: Session, plan: SubscriptionPlan) -> SubscriptionPlan:
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise Conflict("Тариф с таким названием и типом уже существует")
    db.refresh(plan)
    return plan


def _ensure_unique_plan(db: Session, name: str, plan_type: str, exclude_id: Optional[int] = None) -> None:
    q = select(SubscriptionPlan.id).where(SubscriptionPlan.name == name, SubscriptionPlan.plan_type == plan_type)
    if exclude_id is not None:
        q = q.where(SubscriptionPlan.id != exclude_id)
    if db.execute(q).first():
        raise Conflict("Тариф с таким названием и типом уже существует")


def create_plan(db: Session, payload: Dict[str, Any]) -> SubscriptionPlan:
    name = (payload.get("name") or "").strip()
    plan_type = (payload.get("plan_type") or "").strip().lower()
    if not name:
        raise ValidationError("name", "Укажите название тарифа")
    if not plan_type:
        raise ValidationError("plan_type", "Укажите тип тарифа")
    price = _non_negative(payload, "price", float)
    post_count = _non_negative(payload, "post_count", int)
    features = _features_from(payload)
    _ensure_unique_plan(db, name, plan_type)

    plan = SubscriptionPlan(
        name=name,
        plan_type=plan_type,
        price=price,
        post_count=post_count,
        features=dump_features(features),
        is_active=bool(payload.get("is_active", True)),
    )
    db.add(plan)
    plan = _commit_plan(db, plan)
    logger.info("Plan %s (%s) created", plan.id, plan.plan_type)
    return plan


def update_plan(db: Session, plan_id: int, payload: Dict[str, Any]) -> SubscriptionPlan:
    plan = db.get(SubscriptionPlan, plan_id)
    if not plan:
        raise NotFound("Тариф не найден")

    name = (payload.get("name") or "").strip() or plan.name
    plan_type = (payload.get("plan_type") or "").strip().lower() or plan.plan_type
    if (name, plan_type) != (plan.name, plan.plan_type):
        _ensure_unique_plan(db, name, plan_type, exclude_id=plan.id)
    price = _non_negative(payload, "price", float) if payload.get("price") is not None else None
    post_count = _non_negative(payload, "post_count", int) if payload.get("post_count") is not None else None
    features = _features_from(payload) if payload.get("features") is not None else None

    plan.name, plan.plan_type = name, plan_type
    if price is not None:
        plan.price = price
    if post_count is not None:
        plan.post_count = post_count
    if features is not None:
        plan.features = dump_features(features)
    if payload.get("is_active") is not None:
        plan.is_active = bool(payload["is_active"])
    return _commit_plan(db, plan)


def delete_plan(db: Session, plan_id: int) -> None:
    plan = db.get(SubscriptionPlan, plan_id)
    if not plan:
        raise NotFound("Тариф не найден")
    in_use = db.execute(
        select(Subscription.id).where(Subscription.plan_type == plan.plan_type, *_usable_filter(utcnow())).limit(1)
    ).first()
    if in_use:
        raise Conflict("Нельзя удалить тариф: есть действующие подписки этого типа")
    db.delete(plan)
    db.commit()
    logger.info("Plan %s deleted", plan_id)


# ---- Админ ----
def admin_list_subscriptions(db: Session) -> List[Dict[str, Any]]:
    now = utcnow()
    rows = db.execute(
        select(Subscription, User)
        .join(User, User.id == Subscription.user_id)
        .order_by(Subscription.created_at.desc())
    ).all()
    out = []
    for sub, user in rows:
        item = subscription_to_public(db, sub, now)
        item["user"] = {"id": user.id, "name": user.name, "email": user.email}
        out.append(item)
    return out
