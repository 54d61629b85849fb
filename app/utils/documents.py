# app/utils/documents.py
"""
JSON-документы внутри строк таблиц.

Картинки объявления, контакты продавца и список возможностей тарифа
хранятся строкой JSON. Все чтения/записи идут только через этот модуль:
испорченная строка в базе превращается в пустое значение и пишется в лог,
наружу ошибка разбора не уходит.
"""
from __future__ import annotations

import json
import logging
from typing import Any

logger = logging.getLogger(__name__)

CONTACT_FIELDS = ("phone", "email", "location")


def _loads(raw: str | None, expected: type, what: str):
    if raw is None or raw == "":
        return None
    try:
        value = json.loads(raw)
    except (TypeError, ValueError):
        logger.warning("Не удалось разобрать %s: %r", what, raw[:200] if isinstance(raw, str) else raw)
        return None
    if not isinstance(value, expected):
        logger.warning("Неожиданный тип %s: %s", what, type(value).__name__)
        return None
    return value


# ---------- images ----------
def load_images(raw: str | None) -> list[str]:
    value = _loads(raw, list, "images")
    if value is None:
        return []
    return [str(x) for x in value if x is not None]


def dump_images(images: list[str] | None) -> str:
    return json.dumps([str(x) for x in (images or [])], ensure_ascii=False)


# ---------- contact info ----------
def empty_contact() -> dict[str, str]:
    return {k: "" for k in CONTACT_FIELDS}


def normalize_contact(value: Any) -> dict[str, str]:
    """Приводит произвольный dict к {phone, email, location}; ключи без учёта регистра."""
    out = empty_contact()
    if not isinstance(value, dict):
        return out
    for key, v in value.items():
        k = str(key).lower()
        if k in out and v is not None:
            out[k] = str(v).strip()
    return out


def load_contact(raw: str | None) -> dict[str, str]:
    return normalize_contact(_loads(raw, dict, "contact_info"))


def dump_contact(contact: dict | None) -> str:
    return json.dumps(normalize_contact(contact), ensure_ascii=False)


def merge_contact(current: dict, patch: Any) -> dict[str, str]:
    # пустые поля патча не затирают текущие значения
    merged = normalize_contact(current)
    for k, v in normalize_contact(patch).items():
        if v:
            merged[k] = v
    return merged


# ---------- plan features ----------
def load_features(raw: str | None) -> list[str]:
    value = _loads(raw, list, "features")
    return [str(x) for x in value] if value else []


def dump_features(features: list[str] | None) -> str:
    return json.dumps([str(x) for x in (features or [])], ensure_ascii=False)
