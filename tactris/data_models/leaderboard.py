"""
Leaderboard data models for the ranking engine.

Provides the scope enums and immutable data transfer objects for ranked entries
and leaderboard pages.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional, Union

from tactris.utils.exceptions import StatsValidationError
from tactris.utils.time_utils import month_start, utc_now, week_start


class SortField(Enum):
    SCORE = "score"
    LINES_CLEARED = "lines_cleared"

    @property
    def secondary(self) -> "SortField":
        """The tie-break metric: whichever field is not primary."""
        if self is SortField.SCORE:
            return SortField.LINES_CLEARED
        return SortField.SCORE

    @classmethod
    def parse(cls, value: Union["SortField", str]) -> "SortField":
        """Resolve a sort field token, rejecting unknown values."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            allowed = ", ".join(member.value for member in cls)
            raise StatsValidationError("sort_by", f"Unknown sort field '{value}'. Use one of: {allowed}")


class Period(Enum):
    ALL_TIME = "all_time"
    WEEKLY = "weekly"
    MONTHLY = "monthly"

    def window_start(self, now: Optional[datetime] = None) -> Optional[datetime]:
        """Start of the current window for this period, None for all-time."""
        now = now or utc_now()
        if self is Period.WEEKLY:
            return week_start(now)
        if self is Period.MONTHLY:
            return month_start(now)
        return None

    @classmethod
    def parse(cls, value: Union["Period", str]) -> "Period":
        """Resolve a period token, rejecting unknown values."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            allowed = ", ".join(member.value for member in cls)
            raise StatsValidationError("period", f"Unknown period '{value}'. Use one of: {allowed}")


@dataclass(frozen=True)
class RankedEntry:
    """Single competitive data point. rank 0 means not yet ranked."""
    id: Optional[int]
    user_id: int
    display_name: str
    score: int = 0
    lines_cleared: int = 0
    game_mode: str = "classic"
    period: Period = Period.ALL_TIME
    rank: int = 0
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    def metric(self, sort_field: SortField) -> int:
        """Value of the given metric for this entry."""
        if sort_field is SortField.LINES_CLEARED:
            return self.lines_cleared
        return self.score


@dataclass(frozen=True)
class LeaderboardPage:
    """Ranked leaderboard window."""
    entries: List[RankedEntry]
    total_entries: int
    sort_by: SortField
    period: Optional[Period] = None
    game_mode: Optional[str] = None
