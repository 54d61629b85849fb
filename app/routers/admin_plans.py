# app/routers/admin_plans.py
from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..db import get_db
from ..models.user import User
from ..admin.security import require_permission
from ..services import subscriptions

router = APIRouter(prefix="/api/admin", tags=["admin-plans"])

PAYMENTS = "payment_management"


# ---------- Тарифы ----------
@router.get("/subscription-plans")
def admin_plans(_: User = Depends(require_permission(PAYMENTS)), db: Session = Depends(get_db)):
    return {"ok": True, "items": [p.to_dict() for p in subscriptions.list_plans(db, active_only=False)]}


@router.post("/subscription-plans", status_code=201)
def admin_plan_create(
    payload: dict,
    _: User = Depends(require_permission(PAYMENTS, "create")),
    db: Session = Depends(get_db),
):
    plan = subscriptions.create_plan(db, payload)
    return {"ok": True, "plan": plan.to_dict()}


@router.patch("/subscription-plans/{plan_id}")
def admin_plan_update(
    plan_id: int,
    payload: dict,
    _: User = Depends(require_permission(PAYMENTS, "edit")),
    db: Session = Depends(get_db),
):
    plan = subscriptions.update_plan(db, plan_id, payload)
    return {"ok": True, "plan": plan.to_dict()}


@router.delete("/subscription-plans/{plan_id}")
def admin_plan_delete(
    plan_id: int,
    _: User = Depends(require_permission(PAYMENTS, "delete")),
    db: Session = Depends(get_db),
):
    subscriptions.delete_plan(db, plan_id)
    return {"ok": True, "deleted": plan_id}


# ---------- Подписки пользователей ----------
@router.get("/subscriptions")
def admin_subscriptions(_: User = Depends(require_permission(PAYMENTS)), db: Session = Depends(get_db)):
    return {"ok": True, "items": subscriptions.admin_list_subscriptions(db)}
