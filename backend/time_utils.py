"""
Time utilities for the Team Tasks application.

This module provides a single source of truth for time operations,
ensuring consistency across all endpoints and preventing clock drift issues.
"""

from datetime import datetime, timezone, timedelta
from typing import Optional

DUE_SOON_WINDOW = timedelta(hours=24)


def utc_now() -> datetime:
    """
    Get current UTC time.
    Single source of truth for "now" throughout the application.

    Returns:
        timezone-aware datetime in UTC
    """
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """
    Normalize a datetime to UTC.

    Naive values (as returned by SQLite, or ISO strings without an offset)
    are taken to already be UTC.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def due_soon_range(now: Optional[datetime] = None) -> tuple[datetime, datetime]:
    """
    Calculate the [now, now + 24h] window used by the "due soon" filter.

    Returns:
        Tuple of (now, window_end) as timezone-aware datetimes
    """
    start = now or utc_now()
    return start, start + DUE_SOON_WINDOW
