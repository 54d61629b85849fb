# app/routers/favorites.py
from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..db import get_db
from ..deps import get_current_user, ensure_not_maintenance
from ..errors import ValidationError
from ..models.user import User
from ..services import favorites, listings

router = APIRouter(tags=["favorites"])


@router.get("/api/favorites")
def api_favorites(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    rows = favorites.list_favorites(db, user.id)
    return {"ok": True, "items": listings.project(db, rows, requester=user)}


@router.post("/api/favorites", status_code=201)
def api_favorite_add(payload: dict, user: User = Depends(ensure_not_maintenance), db: Session = Depends(get_db)):
    try:
        vehicle_id = int(payload.get("vehicle_id"))
    except (TypeError, ValueError):
        raise ValidationError("vehicle_id", "Укажите объявление")
    fav = favorites.add_favorite(db, user.id, vehicle_id)
    return {"ok": True, "id": fav.id, "vehicle_id": vehicle_id}


@router.delete("/api/favorites/{vehicle_id}")
def api_favorite_remove(vehicle_id: int, user: User = Depends(ensure_not_maintenance), db: Session = Depends(get_db)):
    favorites.remove_favorite(db, user.id, vehicle_id)
    return {"ok": True, "vehicle_id": vehicle_id}


@router.get("/api/favorites/{vehicle_id}/check")
def api_favorite_check(vehicle_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return {"ok": True, "is_favorite": favorites.is_favorite(db, user.id, vehicle_id)}
