# app/services/features.py
from __future__ import annotations

import logging
from typing import Any, Dict

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..errors import ValidationError
from ..models.setting import Setting

logger = logging.getLogger(__name__)

KEY_PREFIX = "feature_"

DEFAULT_MAINTENANCE_MESSAGE = "We are currently performing scheduled maintenance. Please check back later."

# Значения, если ключа в таблице нет
DEFAULTS: Dict[str, Any] = {
    "user_registration": True,
    "price_prediction": True,
    "pro_plan_activation": True,
    "maintenance_mode": False,
    "maintenance_message": DEFAULT_MAINTENANCE_MESSAGE,
}


def _parse_bool(raw: Any) -> bool | None:
    if isinstance(raw, bool):
        return raw
    value = str(raw).strip().lower()
    if value in ("true", "1", "yes", "on"):
        return True
    if value in ("false", "0", "no", "off"):
        return False
    return None


def get_features(db: Session) -> Dict[str, Any]:
    """Читается на каждый запрос, в памяти процесса ничего не кешируем."""
    rows = db.execute(
        select(Setting).where(Setting.setting_key.in_([KEY_PREFIX + k for k in DEFAULTS]))
    ).scalars().all()
    stored = {r.setting_key[len(KEY_PREFIX):]: r.value for r in rows}

    out = dict(DEFAULTS)
    for key, default in DEFAULTS.items():
        if key not in stored or stored[key] is None:
            continue
        if isinstance(default, bool):
            parsed = _parse_bool(stored[key])
            if parsed is None:
                logger.warning("Invalid value for %s%s: %r, using default", KEY_PREFIX, key, stored[key])
                continue
            out[key] = parsed
        else:
            out[key] = stored[key]
    return out


def update_features(db: Session, payload: Dict[str, Any]) -> Dict[str, Any]:
    changes: Dict[str, str] = {}
    for key, value in (payload or {}).items():
        if key not in DEFAULTS or value is None:
            continue
        if isinstance(DEFAULTS[key], bool):
            parsed = _parse_bool(value)
            if parsed is None:
                raise ValidationError(key, f"Ожидается true/false для {key}")
            changes[key] = "true" if parsed else "false"
        else:
            changes[key] = str(value)

    if changes:
        existing = {
            r.setting_key: r
            for r in db.execute(
                select(Setting).where(Setting.setting_key.in_([KEY_PREFIX + k for k in changes]))
            ).scalars().all()
        }
        for key, value in changes.items():
            row = existing.get(KEY_PREFIX + key)
            if row is None:
                db.add(Setting(setting_key=KEY_PREFIX + key, value=value))
            else:
                row.value = value
        db.commit()
        logger.info("Feature flags updated: %s", ", ".join(sorted(changes)))
    return get_features(db)
