# app/routers/vehicles.py
from __future__ import annotations

import math
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ..config import settings
from ..db import get_db
from ..deps import get_current_user, get_optional_user, ensure_not_maintenance
from ..models.user import User
from ..services import listings
from ..services.prediction import predict_price

router = APIRouter(tags=["vehicles"])


# ---------- Каталог ----------
@router.get("/api/vehicles")
def api_vehicles_list(
    page: int = Query(1, ge=1),
    limit: int = Query(settings.LISTINGS_DEFAULT_LIMIT, ge=1),
    search: Optional[str] = None,
    type: Optional[str] = None,
    fuel_type: Optional[str] = None,
    transmission: Optional[str] = None,
    min_price: Optional[float] = None,
    max_price: Optional[float] = None,
    min_year: Optional[int] = None,
    max_year: Optional[int] = None,
    status: Optional[str] = None,
    my_posts: bool = False,
    user: Optional[User] = Depends(get_optional_user),
    db: Session = Depends(get_db),
):
    if my_posts and user is None:
        raise HTTPException(status_code=401, detail="Authentication required")
    filters = {
        "search": search,
        "type": type,
        "fuel_type": fuel_type,
        "transmission": transmission,
        "min_price": min_price,
        "max_price": max_price,
        "min_year": min_year,
        "max_year": max_year,
        "status": status,
        "my_posts": my_posts,
    }
    limit = min(limit, settings.LISTINGS_MAX_LIMIT)
    rows, total = listings.list_listings(db, filters, page=page, limit=limit, requester=user)
    return {
        "ok": True,
        "items": listings.project(db, rows, requester=user),
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "total_pages": math.ceil(total / limit) if total else 0,
        },
    }


@router.get("/api/vehicles/{vehicle_id}")
def api_vehicle_get(
    vehicle_id: int,
    user: Optional[User] = Depends(get_optional_user),
    db: Session = Depends(get_db),
):
    v = listings.get_listing(db, vehicle_id, requester=user)
    return {"ok": True, "item": listings.project(db, [v], requester=user)[0]}


# ---------- Мои объявления ----------
@router.post("/api/vehicles", status_code=201)
def api_vehicle_create(
    payload: dict,
    user: User = Depends(ensure_not_maintenance),
    db: Session = Depends(get_db),
):
    v = listings.create_listing(db, user.id, payload)
    return {"ok": True, "item": listings.project(db, [v], requester=user)[0]}


@router.put("/api/vehicles/{vehicle_id}")
def api_vehicle_update(
    vehicle_id: int,
    payload: dict,
    user: User = Depends(ensure_not_maintenance),
    db: Session = Depends(get_db),
):
    v = listings.update_listing(db, vehicle_id, payload, user.id)
    return {"ok": True, "item": listings.project(db, [v], requester=user)[0]}


@router.delete("/api/vehicles/{vehicle_id}")
def api_vehicle_delete(
    vehicle_id: int,
    user: User = Depends(ensure_not_maintenance),
    db: Session = Depends(get_db),
):
    listings.delete_listing(db, vehicle_id, user.id)
    return {"ok": True, "deleted": vehicle_id}


# ---------- Прогноз цены ----------
@router.post("/api/vehicles/predict-price")
async def api_vehicle_predict_price(
    payload: dict,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    result = await predict_price(db, payload.get("vehicle_id"), payload.get("years_ahead", 0))
    return {"ok": True, "prediction": result}
