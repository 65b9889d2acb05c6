from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, Union

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Default wall clock used by the controllers."""
    return datetime.now(timezone.utc)


def parse_iso_date(date_str: str) -> Optional[datetime]:
    """
    Parses an ISO 8601 / RFC3339 date string into a datetime object.
    Handles the 'Z' suffix by replacing it with '+00:00'.

    Returns:
        A datetime object or None if parsing fails.
    """
    if not date_str:
        return None

    try:
        if date_str.endswith("Z"):
            date_str = date_str[:-1] + "+00:00"

        return datetime.fromisoformat(date_str)
    except ValueError:
        return None


def ensure_utc(dt: Union[datetime, str]) -> datetime:
    """
    Ensures a datetime object is timezone-aware and in UTC.
    If input is a string, it parses it first.
    If input is naive, it assumes UTC.
    """
    if isinstance(dt, str):
        parsed = parse_iso_date(dt)
        if not parsed:
            raise ValueError(f"Invalid date string: {dt}")
        dt = parsed

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    else:
        dt = dt.astimezone(timezone.utc)

    return dt


def to_rfc3339(dt: datetime) -> str:
    """
    Converts a datetime to an RFC3339 string with second precision and a 'Z' suffix.
    """
    return ensure_utc(dt).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def age(since: datetime, now: datetime) -> timedelta:
    """Elapsed time between an object timestamp and now, both coerced to UTC."""
    return ensure_utc(now) - ensure_utc(since)


def format_age(delta: timedelta) -> str:
    """Format timedelta into human readable string, e.g. '45s', '5m', '2h', '3d'."""
    total_seconds = int(delta.total_seconds())

    if total_seconds < 60:
        return f"{total_seconds}s"
    elif total_seconds < 3600:
        return f"{total_seconds // 60}m"
    elif total_seconds < 86400:
        return f"{total_seconds // 3600}h"
    else:
        return f"{total_seconds // 86400}d"
