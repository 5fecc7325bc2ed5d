"""
Timestamp normalization and formatting helpers.

Both stores hold timestamps as ISO-8601 strings. Anything read back from them
passes through ``to_instant`` so the rest of the code only ever sees an aware
UTC ``datetime`` or ``None``.
"""

from datetime import datetime, date
from typing import Any, Optional, Union
import pytz


def get_timezone(timezone_str: str = "UTC") -> pytz.BaseTzInfo:
    """Resolve a timezone name, falling back to UTC"""
    try:
        return pytz.timezone(timezone_str)
    except pytz.UnknownTimeZoneError:
        return pytz.UTC


def utc_now() -> datetime:
    """Current UTC time"""
    return datetime.now(pytz.UTC)


def to_instant(value: Any) -> Optional[datetime]:
    """
    Normalize any stored timestamp shape to an aware UTC datetime.

    Accepts datetimes (naive ones are taken as UTC), dates, ISO-8601 strings,
    wrapped ``{"seconds": ..., "nanoseconds": ...}`` timestamps and epoch
    seconds. Anything unparseable is treated as unset.
    """
    if value is None or value == "":
        return None

    if isinstance(value, datetime):
        if value.tzinfo is None:
            return pytz.UTC.localize(value)
        return value.astimezone(pytz.UTC)

    if isinstance(value, date):
        return pytz.UTC.localize(datetime(value.year, value.month, value.day))

    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            return to_instant(datetime.fromisoformat(text))
        except ValueError:
            return None

    if isinstance(value, dict) and isinstance(value.get("seconds"), (int, float)):
        seconds = value["seconds"] + value.get("nanoseconds", 0) / 1e9
        return datetime.fromtimestamp(seconds, pytz.UTC)

    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return datetime.fromtimestamp(value, pytz.UTC)

    return None


def to_iso(value: Any) -> Optional[str]:
    """Serialize a timestamp for storage"""
    instant = to_instant(value)
    return instant.isoformat() if instant else None


def to_user_timezone(dt: datetime, timezone_str: str = "UTC") -> datetime:
    """Convert an instant to the display timezone"""
    return to_instant(dt).astimezone(get_timezone(timezone_str))


def format_locale_datetime(dt: datetime, timezone_str: str = "UTC") -> str:
    """Human locale string, e.g. ``1/5/2024, 3:04:05 PM``"""
    local = to_user_timezone(dt, timezone_str)
    hour = local.hour % 12 or 12
    suffix = "AM" if local.hour < 12 else "PM"
    return f"{local.month}/{local.day}/{local.year}, {hour}:{local.minute:02d}:{local.second:02d} {suffix}"


def format_locale_date(value: Union[datetime, date, str, None], timezone_str: str = "UTC") -> str:
    """Human locale date, e.g. ``1/5/2024``; unset values render as a dash"""
    instant = to_instant(value)
    if instant is None:
        return "-"
    local = instant.astimezone(get_timezone(timezone_str))
    return f"{local.month}/{local.day}/{local.year}"


def is_same_day(a: Any, b: Any, timezone_str: str = "UTC") -> bool:
    """Whether two timestamps fall on the same calendar day in the display timezone"""
    first, second = to_instant(a), to_instant(b)
    if first is None or second is None:
        return False
    tz = get_timezone(timezone_str)
    return first.astimezone(tz).date() == second.astimezone(tz).date()
