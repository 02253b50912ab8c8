"""
Time helpers for buffer bookkeeping.

All timestamps in the pipeline are timezone-aware UTC datetimes. In storage
they are kept as fixed-width ISO-8601 strings so that lexical comparison in
SQL matches chronological order.

Example:
    >>> from water_quality.utils.time import utcnow, to_db_timestamp
    >>>
    >>> now = utcnow()
    >>> to_db_timestamp(now)
    '2026-10-17T12:00:00.000000Z'
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime

# Fixed width, microsecond precision, always UTC
DB_TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    """Get the current time as an aware UTC datetime."""
    return datetime.now(UTC)


def ensure_utc(dt: datetime) -> datetime:
    """Normalize a datetime to aware UTC.

    Args:
        dt: Datetime (naive values are assumed to be UTC)

    Returns:
        Aware datetime in UTC
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def to_db_timestamp(dt: datetime) -> str:
    """Format a datetime for storage.

    Args:
        dt: Datetime to format

    Returns:
        Fixed-width UTC timestamp string
    """
    return ensure_utc(dt).strftime(DB_TIMESTAMP_FORMAT)


def from_db_timestamp(value: str) -> datetime:
    """Parse a stored timestamp back into an aware datetime.

    Args:
        value: String produced by to_db_timestamp()

    Returns:
        Aware UTC datetime
    """
    return datetime.strptime(value, DB_TIMESTAMP_FORMAT).replace(tzinfo=UTC)

