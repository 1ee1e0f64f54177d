"""
Time utilities for leaderboard periods.

All timestamps handled by the engine are timezone-aware UTC. Naive values
coming back from storage (sqlite drops the offset) are treated as UTC.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes, convert aware ones to UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def week_start(now: datetime) -> datetime:
    """Monday 00:00 UTC of the ISO week containing ``now``."""
    now = ensure_utc(now)
    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
    return midnight - timedelta(days=now.weekday())


def month_start(now: datetime) -> datetime:
    """First day of the month containing ``now``, 00:00 UTC."""
    now = ensure_utc(now)
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
