"""UTC helpers.

The store and the XP engine work with **naive** UTC datetimes throughout.
These wrappers produce them without the deprecated ``datetime.utcnow()``
and fold timezone-aware inputs into the same representation.
"""

from datetime import datetime, timezone
from typing import Any, Optional


def utcnow() -> datetime:
    """Return the current UTC time as a naive (tzinfo=None) datetime."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def utcfromtimestamp(ts: float) -> datetime:
    """Convert a POSIX timestamp to a naive UTC datetime."""
    return datetime.fromtimestamp(ts, tz=timezone.utc).replace(tzinfo=None)


def to_utc_naive(value: Any) -> Optional[datetime]:
    """Coerce datetimes, ISO strings and epoch numbers to naive UTC.

    Returns None when the value cannot be interpreted as a point in time.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    if isinstance(value, (int, float)):
        # Values past year ~2286 in seconds are epoch milliseconds.
        seconds = value / 1000.0 if value > 10_000_000_000 else float(value)
        try:
            return utcfromtimestamp(seconds)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            return None
        if parsed.tzinfo is None:
            return parsed
        return parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return None
