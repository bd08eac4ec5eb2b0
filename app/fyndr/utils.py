from __future__ import annotations

import math
import re
from datetime import date, datetime, timedelta, timezone
from typing import Any

DAY = timedelta(days=1)
HOUR = timedelta(hours=1)

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def utcnow() -> datetime:
    """Naive UTC timestamp; all DateTime columns store naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def is_valid_email(value: str | None) -> bool:
    return bool(value and _EMAIL_RE.match(value))


def parse_datetime(value: Any) -> datetime | None:
    """
    Accepts ISO strings (date or datetime, optional trailing Z), date or datetime objects.
    Aware values are converted to naive UTC.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        dt = datetime(value.year, value.month, value.day)
    else:
        raw = str(value).strip()
        if not raw:
            return None
        if raw.endswith("Z"):
            raw = raw[:-1] + "+00:00"
        dt = datetime.fromisoformat(raw)
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def iso(value: datetime | date | None) -> str | None:
    return value.isoformat() if value is not None else None


def days_ceil(delta: timedelta) -> int:
    return math.ceil(delta / DAY)


def days_floor(delta: timedelta) -> int:
    return math.floor(delta / DAY)


def days_between(a: datetime, b: datetime) -> int:
    return math.ceil(abs(a - b) / DAY)


def hours_between(a: datetime, b: datetime) -> int:
    return math.floor(abs(a - b) / HOUR)


def round1(value: float) -> float:
    return round(value * 10) / 10


def as_float(value: Any) -> float | None:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None
