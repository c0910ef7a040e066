"""
Clock and expiry policy for timed test attempts.

Everything here is a pure function of its arguments (apart from utc_now,
which is the single mockable source of "now"). The same functions drive the
client-facing countdown and the server-side gate deciding whether an
IN_PROGRESS attempt may still be written to.
"""
import math
from datetime import datetime, timedelta, timezone
from typing import Optional


def utc_now() -> datetime:
    """
    Return the current datetime in UTC timezone.

    Using this function instead of datetime.now(timezone.utc) directly
    enables easier testing through mocking.
    """
    return datetime.now(timezone.utc)


def ensure_timezone_aware(dt: Optional[datetime]) -> datetime:
    """
    Ensure a datetime object is timezone-aware (UTC).
    SQLite may return timezone-naive datetimes even when stored as timezone-aware.

    Raises:
        ValueError: If dt is None
    """
    if dt is None:
        raise ValueError("datetime cannot be None")
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def compute_expires_at(started_at: datetime, duration_minutes: int) -> datetime:
    """
    Compute the fixed expiry instant of an attempt.

    Args:
        started_at: When the attempt was created
        duration_minutes: Test duration

    Returns:
        started_at + duration_minutes, timezone-aware

    Raises:
        ValueError: If duration_minutes is not positive
    """
    if duration_minutes <= 0:
        raise ValueError(f"duration_minutes must be positive, got {duration_minutes}")
    return ensure_timezone_aware(started_at) + timedelta(minutes=duration_minutes)


def remaining_seconds(expires_at: datetime, now: datetime) -> int:
    """
    Whole seconds left before expiry, floored, never negative.

    Example:
        >>> start = datetime(2024, 1, 1, tzinfo=timezone.utc)
        >>> remaining_seconds(start + timedelta(seconds=90.7), start)
        90
        >>> remaining_seconds(start, start + timedelta(minutes=5))
        0
    """
    delta = ensure_timezone_aware(expires_at) - ensure_timezone_aware(now)
    return max(0, math.floor(delta.total_seconds()))


def is_expired(expires_at: datetime, now: datetime) -> bool:
    """An attempt is expired from the expiry instant onwards (now >= expires_at)."""
    return ensure_timezone_aware(now) >= ensure_timezone_aware(expires_at)
