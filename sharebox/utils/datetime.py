"""Datetime utilities for handling timezone-aware datetime objects."""
from datetime import datetime, timezone


def utcnow() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_aware(dt: datetime | None) -> datetime | None:
    """
    Convert naive datetime to aware UTC datetime.

    Share metadata written by older releases may carry naive timestamps.
    They represent UTC time, so UTC timezone info is attached to allow safe
    comparisons with timezone-aware datetime objects.

    Args:
        dt: A datetime object, which may be naive or aware.

    Returns:
        A timezone-aware datetime, or None if input is None.

    Examples:
        >>> from datetime import datetime, timezone
        >>> naive_dt = datetime(2025, 1, 1, 12, 0)
        >>> aware_dt = ensure_aware(naive_dt)
        >>> aware_dt.tzinfo
        datetime.timezone.utc
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def from_timestamp(ts: float) -> datetime:
    """Convert a POSIX timestamp (e.g. st_mtime) to an aware UTC datetime."""
    return datetime.fromtimestamp(ts, tz=timezone.utc)
