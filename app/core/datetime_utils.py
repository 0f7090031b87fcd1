"""Centralized datetime utilities for consistent timezone handling.

All functions return naive UTC datetimes for database compatibility
(SQLAlchemy models store naive UTC).

Usage:
    from app.core.datetime_utils import utc_now, get_cutoff

    job.ended_at = utc_now()

    cutoff = get_cutoff(hours=24)
    stale = query.filter(Job.updated_at < cutoff)
"""

from datetime import UTC, datetime, timedelta


def utc_now() -> datetime:
    """Get current UTC time as naive datetime.

    Replaces deprecated datetime.utcnow().
    """
    return datetime.now(UTC).replace(tzinfo=None)


def is_expired(expires_at: datetime) -> bool:
    """Check if a timestamp has expired.

    Args:
        expires_at: Expiry timestamp (naive UTC)

    Returns:
        True if current time is past expires_at
    """
    return utc_now() > expires_at


def get_cutoff(hours: int = 0, days: int = 0) -> datetime:
    """Get cutoff datetime for filtering queries.

    Args:
        hours: Hours to subtract from now
        days: Days to subtract from now

    Returns:
        Naive UTC datetime representing the cutoff point
    """
    return utc_now() - timedelta(hours=hours, days=days)


def get_expiry(minutes: int = 0, hours: int = 0, days: int = 0) -> datetime:
    """Get future expiry datetime."""
    return utc_now() + timedelta(minutes=minutes, hours=hours, days=days)


def to_iso_utc(dt: datetime) -> str:
    """Render a naive UTC datetime as an ISO-8601 string with a Z suffix.

    Used for SSE payloads, which browsers parse with `new Date(...)`.
    """
    if dt.tzinfo is not None:
        dt = dt.astimezone(UTC).replace(tzinfo=None)
    return dt.isoformat(timespec="milliseconds") + "Z"
