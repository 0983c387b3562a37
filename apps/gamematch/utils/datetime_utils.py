"""
Datetime utility functions.
Every timestamp inside the engine is timezone-aware UTC; these helpers
convert to and from the ISO strings used by persisted records.
"""

from datetime import datetime
from typing import Optional, Union
import pytz


def utcnow() -> datetime:
    """
    Get current UTC datetime using pytz.UTC.

    Returns:
        Current UTC datetime with pytz timezone information
    """
    return datetime.now(pytz.UTC)


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes, convert aware ones to UTC."""
    if value.tzinfo is None:
        return pytz.UTC.localize(value)
    return value.astimezone(pytz.UTC)


def parse_timestamp(value: Union[str, datetime, None]) -> Optional[datetime]:
    """
    Parse a persisted timestamp back into an aware UTC datetime.

    Args:
        value: ISO-8601 string (a trailing "Z" is accepted), datetime, or None

    Returns:
        Aware UTC datetime, or None for empty values

    Examples:
        >>> parse_timestamp("2026-01-21T10:00:00Z").isoformat()
        '2026-01-21T10:00:00+00:00'
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    if not isinstance(value, str):
        raise ValueError(f"Expected string or datetime, got {type(value)}")
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return ensure_utc(datetime.fromisoformat(text))


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    """Serialize a datetime as an ISO-8601 UTC string (None stays None)."""
    if value is None:
        return None
    return ensure_utc(value).isoformat()


def elapsed_ms(started_at: datetime, now: datetime) -> int:
    """Milliseconds between two instants, never negative."""
    delta = ensure_utc(now) - ensure_utc(started_at)
    return max(0, int(delta.total_seconds() * 1000))
