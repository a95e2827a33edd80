"""UTC time helpers.

Some database drivers hand back naive datetimes for timezone-aware columns.
All comparisons in the engine go through ``as_utc`` so naive values are read
as UTC instead of raising on mixed comparisons.
"""

from __future__ import annotations

from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """Return ``value`` as an aware UTC datetime (None passes through)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def is_past(value: datetime | None, now: datetime | None = None) -> bool:
    """True when ``value`` is set and strictly earlier than ``now``."""
    if value is None:
        return False
    return (now or utcnow()) > as_utc(value)
