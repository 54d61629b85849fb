from __future__ import annotations

import calendar
import datetime as dt


def utcnow() -> dt.datetime:
    # В базе храним наивное UTC-время
    return dt.datetime.now(dt.timezone.utc).replace(tzinfo=None)


def add_months(value: dt.datetime, months: int) -> dt.datetime:
    """Календарный сдвиг на N месяцев; день обрезается до конца месяца (31 янв + 1 = 28/29 фев)."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def iso(value: dt.datetime | None) -> str | None:
    return value.isoformat() if value else None
