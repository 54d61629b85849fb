# app/services/favorites.py
from __future__ import annotations

import logging
from typing import List

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..errors import NotFound, Conflict
from ..models.favorite import Favorite
from ..models.vehicle import Vehicle, ListingStatus

logger = logging.getLogger(__name__)


def _find(db: Session, user_id: str, vehicle_id: int) -> Favorite | None:
    return db.execute(
        select(Favorite).where(Favorite.user_id == user_id, Favorite.vehicle_id == vehicle_id)
    ).scalar_one_or_none()


def add_favorite(db: Session, user_id: str, vehicle_id: int) -> Favorite:
    v = db.get(Vehicle, vehicle_id)
    if not v or v.status != ListingStatus.APPROVED:
        raise NotFound("Объявление не найдено или ещё не одобрено")
    if _find(db, user_id, vehicle_id):
        raise Conflict("Объявление уже в избранном")

    fav = Favorite(user_id=user_id, vehicle_id=vehicle_id)
    db.add(fav)
    try:
        db.commit()
    except IntegrityError:
        # параллельный запрос успел раньше
        db.rollback()
        raise Conflict("Объявление уже в избранном")
    db.refresh(fav)
    return fav


def remove_favorite(db: Session, user_id: str, vehicle_id: int) -> None:
    fav = _find(db, user_id, vehicle_id)
    if not fav:
        raise NotFound("Объявления нет в избранном")
    db.delete(fav)
    db.commit()


def is_favorite(db: Session, user_id: str, vehicle_id: int) -> bool:
    return _find(db, user_id, vehicle_id) is not None


def list_favorites(db: Session, user_id: str) -> List[Vehicle]:
    return db.execute(
        select(Vehicle)
        .join(Favorite, Favorite.vehicle_id == Vehicle.id)
        .where(Favorite.user_id == user_id, Vehicle.status == ListingStatus.APPROVED)
        .order_by(Favorite.created_at.desc(), Favorite.id.desc())
    ).scalars().all()
