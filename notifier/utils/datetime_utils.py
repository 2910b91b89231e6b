from datetime import datetime, timedelta, timezone
from typing import Optional


def utc_now() -> datetime:
    """
    Get current UTC datetime as a timezone-aware datetime.

    Returns:
        datetime: Current UTC datetime with timezone info
    """
    return datetime.now(timezone.utc)


def naive_utc_now() -> datetime:
    """
    Get current UTC datetime as a naive datetime (no timezone info).
    Notification timestamps are stored naive in UTC.

    Returns:
        datetime: Current UTC datetime without timezone info
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(dt: datetime) -> datetime:
    """
    Convert a datetime object to naive UTC (no timezone info).

    Args:
        dt: Datetime object to convert. Naive input is assumed to be UTC already.

    Returns:
        datetime: Naive UTC datetime
    """
    if dt.tzinfo is None:
        return dt
    utc_dt = dt.astimezone(timezone.utc)
    return utc_dt.replace(tzinfo=None)


def optional_naive_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Same as to_naive_utc but passes None through."""
    return to_naive_utc(dt) if dt is not None else None


def seconds_until_next_boundary(now: datetime, interval_seconds: int) -> float:
    """
    Seconds from `now` until the next multiple of `interval_seconds` since the epoch.

    With a 60 second interval this lines ticks up with wall-clock minutes, the
    way a `* * * * *` cron entry fires.
    """
    remainder = now.timestamp() % interval_seconds
    return float(interval_seconds - remainder)


def is_claim_live(
    claimed_at: Optional[datetime], now: datetime, ttl_seconds: int
) -> bool:
    """Whether a dispatch claim taken at `claimed_at` still blocks other senders."""
    if claimed_at is None:
        return False
    return claimed_at > now - timedelta(seconds=ttl_seconds)
