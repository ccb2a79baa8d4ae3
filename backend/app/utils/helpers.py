"""Miscellaneous helper functions."""

from __future__ import annotations

import datetime as dt
from typing import Any, Optional, Tuple


def utcnow() -> dt.datetime:
    """Timezone-aware ``now`` in UTC."""
    return dt.datetime.now(dt.timezone.utc)


def as_utc(value: Optional[dt.datetime]) -> Optional[dt.datetime]:
    """Attach UTC to naive datetimes.

    SQLite hands back naive values even for ``DateTime(timezone=True)``
    columns; everything we store is UTC, so the zone is implied.
    """
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=dt.timezone.utc)


def from_epoch(value: Any) -> Optional[dt.datetime]:
    """Convert epoch seconds (int, float or numeric string) to an aware UTC datetime."""
    if value is None:
        return None
    try:
        return dt.datetime.fromtimestamp(float(value), tz=dt.timezone.utc)
    except (TypeError, ValueError, OverflowError, OSError):
        return None


def month_bounds(when: Optional[dt.datetime] = None) -> Tuple[dt.datetime, dt.datetime]:
    """Return ``(first day, last day)`` of the calendar month containing ``when``.

    Both bounds are midnight UTC; the end bound is the last day of the
    month, not the first day of the next one.
    """
    when = when or utcnow()
    start = dt.datetime(when.year, when.month, 1, tzinfo=dt.timezone.utc)
    if when.month == 12:
        next_start = dt.datetime(when.year + 1, 1, 1, tzinfo=dt.timezone.utc)
    else:
        next_start = dt.datetime(when.year, when.month + 1, 1, tzinfo=dt.timezone.utc)
    return start, next_start - dt.timedelta(days=1)


def mask_code(code: str | None) -> str:
    """Short, log-safe rendering of an authorization code."""
    if not code:
        return "<none>"
    return code[:5] + "..."
