"""Resolution of caller-supplied lookback windows and limits."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional

from models.records import TimeWindow, parse_timestamp
from services.errors import InvalidParameter

DEFAULT_DAYS = 30
DEFAULT_LIMIT = 10

Clock = Callable[[], datetime]


def parse_positive_int(name: str, value: Any, default: int) -> int:
    """Accept ints or digit strings; ``None`` and blank strings mean the default."""
    if value is None:
        return default
    if isinstance(value, bool):
        raise InvalidParameter(name, value, "expected a positive integer")
    if isinstance(value, int):
        parsed = value
    elif isinstance(value, str):
        candidate = value.strip()
        if not candidate:
            return default
        try:
            parsed = int(candidate)
        except ValueError as exc:
            raise InvalidParameter(name, value, "expected a positive integer") from exc
    else:
        raise InvalidParameter(name, value, "expected a positive integer")
    if parsed <= 0:
        raise InvalidParameter(name, value, "must be greater than zero")
    return parsed


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def resolve_window(
    days: Any = None,
    now: Optional[datetime] = None,
    default: int = DEFAULT_DAYS,
) -> TimeWindow:
    """Turn a ``days`` parameter into a concrete ``[now - days, now]`` window."""
    span = parse_positive_int("days", days, default)
    end = parse_timestamp(now) if now is not None else utcnow()
    return TimeWindow(start=end - timedelta(days=span), end=end, days=span)


def record_timestamp(record: dict, field_name: str) -> Optional[datetime]:
    """The record's timestamp, or ``None`` when absent or unparseable."""
    value = record.get(field_name)
    if value is None:
        return None
    try:
        return parse_timestamp(value)
    except ValueError:
        return None


def day_key(record: dict, field_name: str) -> Optional[str]:
    moment = record_timestamp(record, field_name)
    return moment.date().isoformat() if moment is not None else None
