"""
Datetime utilities for the portal calendar services.

Everything downstream of the normalizer works in naive local wall-clock time.
"""
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Optional, Union


def to_local_naive(dt: datetime, tz: Optional[tzinfo] = None) -> datetime:
    """
    Convert a datetime to naive local wall-clock time.

    Args:
        dt: Aware or naive datetime. Naive values are assumed to already be
            local wall-clock time and are returned unchanged.
        tz: Target zone; None means the machine's local zone

    Returns:
        Naive datetime in local time
    """
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(tz).replace(tzinfo=None)


def to_aware_local(dt: datetime, tz: Optional[tzinfo] = None) -> datetime:
    """
    Attach the local zone to a naive wall-clock datetime (for API queries).

    Args:
        dt: Naive local datetime; aware values are returned unchanged
        tz: Local zone; None means the machine's local zone
    """
    if dt.tzinfo is not None:
        return dt
    if tz is None:
        return dt.astimezone()
    return dt.replace(tzinfo=tz)


def parse_timestamp(
    value: Union[str, datetime, date, None],
    tz: Optional[tzinfo] = None,
) -> Optional[datetime]:
    """
    Parse an event timestamp into naive local time.

    Accepts ISO-8601 strings (with or without a trailing "Z" or offset),
    date-only strings, datetime and date objects.

    Returns:
        Naive local datetime, or None if the value is missing or unparseable
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        return datetime.combine(value, time.min)
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.endswith("Z") or text.endswith("z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None

    # Offsets near datetime.min/max cannot be shifted into the local zone
    try:
        return to_local_naive(parsed, tz)
    except (OverflowError, ValueError):
        return None


def is_date_only(value: Union[str, date, datetime, None]) -> bool:
    """True for "YYYY-MM-DD" strings and plain date objects."""
    if isinstance(value, datetime):
        return False
    if isinstance(value, date):
        return True
    if isinstance(value, str):
        text = value.strip()
        return len(text) == 10 and text[4] == "-" and text[7] == "-"
    return False


def local_midnight(value: Union[date, datetime]) -> datetime:
    """Truncate a date or datetime to local midnight."""
    if isinstance(value, datetime):
        value = value.date()
    return datetime.combine(value, time.min)


def hours_since_midnight(dt: datetime, day: date) -> float:
    """
    Fractional hours between the given day's midnight and dt.

    Values past the end of the day exceed 24; values before it are negative.
    """
    delta: timedelta = dt - local_midnight(day)
    return delta.total_seconds() / 3600.0


def local_now(tz: Optional[tzinfo] = None) -> datetime:
    """Current naive local wall-clock time in the given zone."""
    return to_local_naive(datetime.now(timezone.utc), tz)
