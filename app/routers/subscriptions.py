# app/routers/subscriptions.py
from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..db import get_db
from ..deps import get_current_user, ensure_not_maintenance
from ..errors import ValidationError
from ..models.user import User
from ..services import subscriptions

router = APIRouter(tags=["subscriptions"])


@router.get("/api/subscriptions/plans")
def api_plans(db: Session = Depends(get_db)):
    return {"ok": True, "items": [p.to_dict() for p in subscriptions.list_plans(db)]}


@router.get("/api/subscriptions/status")
def api_subscription_status(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return {"ok": True, **subscriptions.get_status(db, user.id)}


@router.post("/api/subscriptions", status_code=201)
def api_subscription_purchase(
    payload: dict,
    user: User = Depends(ensure_not_maintenance),
    db: Session = Depends(get_db),
):
    plan_id = payload.get("plan_id")
    if plan_id not in (None, ""):
        try:
            plan_id = int(plan_id)
        except (TypeError, ValueError):
            raise ValidationError("plan_id", "Некорректный идентификатор тарифа")
    else:
        plan_id = None
    sub = subscriptions.purchase(
        db,
        user.id,
        plan_id=plan_id,
        plan_type=payload.get("plan_type"),
        payment_method=payload.get("payment_method"),
        transaction_id=payload.get("transaction_id"),
    )
    return {"ok": True, "subscription": subscriptions.subscription_to_public(db, sub)}


@router.delete("/api/subscriptions")
def api_subscription_cancel(user: User = Depends(ensure_not_maintenance), db: Session = Depends(get_db)):
    sub = subscriptions.cancel(db, user.id)
    return {"ok": True, "subscription": subscriptions.subscription_to_public(db, sub)}
