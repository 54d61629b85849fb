# app/services/prediction.py
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx
from sqlalchemy.orm import Session

from ..config import settings
from ..errors import ValidationError, NotFound, Forbidden, Unavailable
from ..models.vehicle import Vehicle
from ..utils.clock import utcnow
from . import features as feature_flags

logger = logging.getLogger(__name__)

MAX_YEARS_AHEAD = 5


def _vehicle_for_prediction(db: Session, vehicle_id: Any, years_ahead: Any) -> tuple[Vehicle, int]:
    if vehicle_id in (None, ""):
        raise ValidationError("vehicle_id", "Укажите объявление")
    try:
        years = int(years_ahead if years_ahead is not None else 0)
    except (TypeError, ValueError):
        raise ValidationError("years_ahead", "years_ahead должен быть числом")
    if not 0 <= years <= MAX_YEARS_AHEAD:
        raise ValidationError("years_ahead", f"years_ahead должен быть от 0 до {MAX_YEARS_AHEAD}")
    try:
        v = db.get(Vehicle, int(vehicle_id))
    except (TypeError, ValueError):
        raise ValidationError("vehicle_id", "Некорректный идентификатор объявления")
    if not v:
        raise NotFound("Объявление не найдено")
    if (v.type or "").lower() != "car":
        raise ValidationError("type", "Прогноз доступен только для легковых автомобилей")
    return v, years


async def predict_price(
    db: Session,
    vehicle_id: Any,
    years_ahead: Any = 0,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Dict[str, Any]:
    """Один запрос к внешнему сервису, с таймаутом и без повторов."""
    if not feature_flags.get_features(db)["price_prediction"]:
        raise Forbidden("Прогноз цены временно отключён")
    v, years = _vehicle_for_prediction(db, vehicle_id, years_ahead)
    current_price = float(v.price)

    body = {
        "brand": (v.brand or "").upper(),
        "model": v.model,
        "year": v.year,
        "mileage": v.mileage,
        "current_price": current_price,
        "condition": v.condition,
        "years_ahead": years,
    }
    url = settings.ML_API_URL.rstrip("/") + "/predict"
    try:
        async with httpx.AsyncClient(timeout=settings.ML_API_TIMEOUT, transport=transport) as client:
            r = await client.post(url, json=body)
    except httpx.HTTPError as e:
        logger.error("Prediction service call failed: %s", e)
        raise Unavailable("Сервис прогноза цены недоступен", details=str(e))

    if r.status_code >= 400:
        logger.error("Prediction service answered %s: %s", r.status_code, r.text[:500])
        raise Unavailable("Не удалось получить прогноз цены", details=r.text)
    try:
        data = r.json()
        predicted = float(data["predicted_price"])
    except (ValueError, KeyError, TypeError):
        logger.error("Unexpected prediction response: %s", r.text[:500])
        raise Unavailable("Некорректный ответ сервиса прогноза", details=r.text)

    difference = predicted - current_price
    return {
        "current_price": current_price,
        "predicted_price": predicted,
        "price_difference": difference,
        "price_change_percentage": difference / current_price * 100,
        "confidence": data.get("confidence"),
        "years_ahead": data.get("years_ahead", years),
        "currency": data.get("currency") or "LKR",
        "market": data.get("market") or "Sri Lankan",
        "price_trend": data.get("price_trend") or [],
        "timestamp": data.get("timestamp") or utcnow().isoformat(),
        "vehicle": {
            "id": v.id,
            "title": v.title,
            "brand": v.brand,
            "model": v.model,
            "year": v.year,
            "mileage": v.mileage,
            "fuel_type": v.fuel_type,
            "transmission": v.transmission,
            "type": v.type,
        },
    }
