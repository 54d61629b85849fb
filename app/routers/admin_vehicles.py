# app/routers/admin_vehicles.py
from __future__ import annotations

import math
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from ..config import settings
from ..db import get_db
from ..errors import ValidationError
from ..models.user import User
from ..models.vehicle import ListingStatus
from ..admin.security import require_permission
from ..realtime import hub
from ..services import listings

router = APIRouter(prefix="/api/admin/vehicles", tags=["admin-vehicles"])

VEHICLES = "vehicle_management"


def _ids(payload: dict) -> list[int]:
    raw = payload.get("ids")
    if not isinstance(raw, list) or not raw:
        raise ValidationError("ids", "Передайте список id")
    try:
        return [int(x) for x in raw]
    except (TypeError, ValueError):
        raise ValidationError("ids", "id должны быть числами")


def _status_event(background_tasks: BackgroundTasks, ids: list[int], status: ListingStatus) -> None:
    background_tasks.add_task(hub.publish, "vehicle_status", {"ids": ids, "status": status.value})


# ---------- Список (любые статусы, email владельца всегда виден) ----------
@router.get("")
def admin_vehicles_list(
    page: int = Query(1, ge=1),
    limit: int = Query(settings.LISTINGS_DEFAULT_LIMIT, ge=1),
    status: Optional[str] = None,
    search: Optional[str] = None,
    type: Optional[str] = None,
    user: User = Depends(require_permission(VEHICLES)),
    db: Session = Depends(get_db),
):
    limit = min(limit, settings.LISTINGS_MAX_LIMIT)
    filters = {"status": status, "search": search, "type": type}
    rows, total = listings.list_listings(db, filters, page=page, limit=limit, requester=user, admin_view=True)
    return {
        "ok": True,
        "items": listings.project(db, rows, requester=user, expose_email=True),
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "total_pages": math.ceil(total / limit) if total else 0,
        },
    }


# ---------- Real-time stream (SSE) ----------
@router.get("/stream")
def admin_vehicles_stream(_: User = Depends(require_permission(VEHICLES))):
    async def gen():
        # первый «комментарий» держит канал открытым за прокси
        yield ": ok\n\n"
        async for msg in hub.subscribe():
            yield msg
    return StreamingResponse(gen(), media_type="text/event-stream")


@router.get("/{vehicle_id}")
def admin_vehicle_get(vehicle_id: int, user: User = Depends(require_permission(VEHICLES)), db: Session = Depends(get_db)):
    v = listings.get_listing(db, vehicle_id, requester=user)
    return {"ok": True, "item": listings.project(db, [v], requester=user, expose_email=True)[0]}


@router.post("", status_code=201)
def admin_vehicle_create(
    payload: dict,
    background_tasks: BackgroundTasks,
    actor: User = Depends(require_permission(VEHICLES, "create")),
    db: Session = Depends(get_db),
):
    v = listings.admin_create_listing(db, actor, payload)
    _status_event(background_tasks, [v.id], v.status)
    return {"ok": True, "item": listings.project(db, [v], requester=actor, expose_email=True)[0]}


@router.put("/{vehicle_id}")
def admin_vehicle_update(
    vehicle_id: int,
    payload: dict,
    background_tasks: BackgroundTasks,
    actor: User = Depends(require_permission(VEHICLES, "edit")),
    db: Session = Depends(get_db),
):
    v = listings.admin_update_listing(db, vehicle_id, payload)
    if payload.get("status"):
        _status_event(background_tasks, [v.id], v.status)
    return {"ok": True, "item": listings.project(db, [v], requester=actor, expose_email=True)[0]}


# ---------- Модерация ----------
def _set_status(db: Session, background_tasks: BackgroundTasks, vehicle_id: int, status) -> dict:
    v = listings.admin_set_status(db, vehicle_id, status)
    _status_event(background_tasks, [v.id], v.status)
    return {"ok": True, "id": v.id, "status": v.status.value, "approved_at": v.approved_at.isoformat() if v.approved_at else None}


@router.post("/{vehicle_id}/approve")
def admin_vehicle_approve(
    vehicle_id: int,
    background_tasks: BackgroundTasks,
    _: User = Depends(require_permission(VEHICLES, "edit")),
    db: Session = Depends(get_db),
):
    return _set_status(db, background_tasks, vehicle_id, ListingStatus.APPROVED)


@router.post("/{vehicle_id}/reject")
def admin_vehicle_reject(
    vehicle_id: int,
    background_tasks: BackgroundTasks,
    _: User = Depends(require_permission(VEHICLES, "edit")),
    db: Session = Depends(get_db),
):
    return _set_status(db, background_tasks, vehicle_id, ListingStatus.REJECTED)


@router.post("/{vehicle_id}/status")
def admin_vehicle_status(
    vehicle_id: int,
    payload: dict,
    background_tasks: BackgroundTasks,
    _: User = Depends(require_permission(VEHICLES, "edit")),
    db: Session = Depends(get_db),
):
    return _set_status(db, background_tasks, vehicle_id, payload.get("status"))


@router.post("/bulk-status")
def admin_vehicles_bulk_status(
    payload: dict,
    background_tasks: BackgroundTasks,
    _: User = Depends(require_permission(VEHICLES, "edit")),
    db: Session = Depends(get_db),
):
    status = listings.parse_status(payload.get("status") or ListingStatus.APPROVED)
    updated = listings.admin_bulk_set_status(db, _ids(payload), status)
    if updated:
        _status_event(background_tasks, updated, status)
    return {"ok": True, "updated": updated, "status": status.value}


@router.post("/bulk-delete")
def admin_vehicles_bulk_delete(
    payload: dict,
    _: User = Depends(require_permission(VEHICLES, "delete")),
    db: Session = Depends(get_db),
):
    deleted = listings.admin_bulk_delete(db, _ids(payload))
    return {"ok": True, "deleted": deleted}


@router.delete("/{vehicle_id}")
def admin_vehicle_delete(
    vehicle_id: int,
    _: User = Depends(require_permission(VEHICLES, "delete")),
    db: Session = Depends(get_db),
):
    listings.admin_delete_listing(db, vehicle_id)
    return {"ok": True, "deleted": vehicle_id}
