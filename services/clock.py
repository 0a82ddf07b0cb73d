# services/clock.py
"""Time helpers shared by the materializer, classifier and monitor.

Internally every instant is an aware UTC ``datetime``. Mongo hands datetimes
back naive (UTC), older documents may carry ISO strings or epoch numbers, so
everything read from a document goes through :func:`to_datetime` first.
"""

from datetime import date, datetime, time, timedelta, timezone
from functools import lru_cache
from typing import Any, Union
from zoneinfo import ZoneInfo

Zone = Union[timezone, ZoneInfo]

# Epoch values above this are treated as milliseconds.
_MILLIS_THRESHOLD = 100_000_000_000


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@lru_cache(maxsize=None)
def zone(name: str) -> Zone:
    if name.upper() in ("UTC", "Z"):
        return timezone.utc
    return ZoneInfo(name)


def to_datetime(value: Any) -> datetime:
    if value is None:
        raise ValueError("Cannot convert None to a datetime")
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    if isinstance(value, bool):
        raise TypeError(f"Unsupported timestamp value: {value!r}")
    if isinstance(value, (int, float)):
        seconds = value / 1000 if abs(value) >= _MILLIS_THRESHOLD else value
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        return to_datetime(datetime.fromisoformat(text))
    # bson.timestamp.Timestamp and similar wrappers
    as_datetime = getattr(value, "as_datetime", None)
    if callable(as_datetime):
        return to_datetime(as_datetime())
    raise TypeError(f"Unsupported timestamp value: {value!r}")


def to_date(value: Any) -> date:
    if isinstance(value, date) and not isinstance(value, datetime):
        return value
    if isinstance(value, str) and len(value.strip()) == 10:
        return date.fromisoformat(value.strip())
    return to_datetime(value).date()


def to_storage(value: Any) -> datetime:
    """Naive UTC, the form BSON stores."""
    return to_datetime(value).replace(tzinfo=None)


def date_to_storage(value: Any) -> datetime:
    day = to_date(value)
    return datetime(day.year, day.month, day.day)


def elapsed(start: Any, end: Any) -> timedelta:
    return to_datetime(end) - to_datetime(start)


def hours_between(start: Any, end: Any) -> float:
    return elapsed(start, end).total_seconds() / 3600


def days_between(start: Any, end: Any) -> float:
    return elapsed(start, end).total_seconds() / 86400


def local_date(instant: Any, tz: str = "UTC") -> date:
    return to_datetime(instant).astimezone(zone(tz)).date()


def is_same_local_day(a: Any, b: Any, tz: str = "UTC") -> bool:
    return local_date(a, tz) == local_date(b, tz)


def parse_time_of_day(value: str) -> time:
    try:
        hours, minutes = (int(part) for part in value.split(":"))
        return time(hours, minutes)
    except (AttributeError, TypeError, ValueError):
        raise ValueError(f"Time of day must be HH:MM, got {value!r}") from None


def at_time_of_day(day: date, time_of_day: str, tz: str = "UTC") -> datetime:
    """Wall-clock ``time_of_day`` on ``day`` in ``tz``, as an aware UTC instant."""
    local = datetime.combine(day, parse_time_of_day(time_of_day), tzinfo=zone(tz))
    return local.astimezone(timezone.utc)
