"""Timezone helpers shared by the coaching services."""

import math
from datetime import datetime, timedelta, timezone
from typing import Optional


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """
    Normalize a datetime to aware UTC.

    SQLite hands back naive datetimes for timezone-aware columns; those are
    stored in UTC, so a naive value is tagged rather than converted.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def iso_date(value: Optional[datetime]) -> Optional[str]:
    """Format as YYYY-MM-DD, or None."""
    if value is None:
        return None
    return ensure_utc(value).date().isoformat()


def days_remaining(target: datetime, now: Optional[datetime] = None) -> int:
    """
    Whole days until ``target``, rounded up; negative once it has passed.

    Target dates are stored as midnight UTC, so a target of today counts as
    0 days, tomorrow as 1 and yesterday as -1.
    """
    now = ensure_utc(now or utc_now())
    delta = ensure_utc(target) - now
    return math.ceil(delta / timedelta(days=1))


def next_utc_midnight(now: Optional[datetime] = None) -> datetime:
    """Start of the next UTC day."""
    now = ensure_utc(now or utc_now())
    tomorrow = now.date() + timedelta(days=1)
    return datetime.combine(tomorrow, datetime.min.time(), tzinfo=timezone.utc)
