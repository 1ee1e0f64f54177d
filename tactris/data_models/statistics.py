"""
Statistics data models for the statistics engine.

Provides immutable records for completed game sessions, a user's lifetime
statistics and the derived read-only summary view. Numeric types are enforced
here, once, so the accumulator never has to re-parse its inputs.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

from tactris.config import Config
from tactris.constants import StorageConstants, SummaryConstants
from tactris.utils.exceptions import StatsValidationError
from tactris.utils.time_utils import utc_now

_SESSION_INT_FIELDS = ('score', 'lines_cleared', 'figures_placed', 'duration', 'moves_count')


def _coerce_int(name: str, value: Any) -> int:
    """Coerce an integral value coming from an outer layer."""
    if isinstance(value, bool):
        raise StatsValidationError(name, f"{name} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            pass
    raise StatsValidationError(name, f"{name} must be an integer")


def _safe_ratio(numerator: float, denominator: float) -> float:
    if not denominator:
        return 0.0
    return round(numerator / denominator, SummaryConstants.AVERAGE_PRECISION)


@dataclass(frozen=True)
class GameSessionResult:
    """Outcome of one completed game session."""
    score: int
    lines_cleared: int
    figures_placed: int = 0
    duration: int = 0  # Seconds
    moves_count: int = 0
    placement_efficiency: float = 0.0  # 0-100
    game_result: Optional[str] = None

    def __post_init__(self):
        for name in _SESSION_INT_FIELDS:
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise StatsValidationError(name, f"{name} must be an integer")
            if value < 0:
                raise StatsValidationError(name, f"{name} cannot be negative")
            if value > StorageConstants.MAX_SESSION_VALUE:
                raise StatsValidationError(name, f"{name} exceeds {StorageConstants.MAX_SESSION_VALUE}")

        efficiency = self.placement_efficiency
        if isinstance(efficiency, bool) or not isinstance(efficiency, (int, float)):
            raise StatsValidationError("placement_efficiency", "placement_efficiency must be a number")
        if not (StorageConstants.MIN_PLACEMENT_EFFICIENCY <= efficiency <= StorageConstants.MAX_PLACEMENT_EFFICIENCY):
            raise StatsValidationError("placement_efficiency", "placement_efficiency must be between 0 and 100")
        object.__setattr__(self, 'placement_efficiency', float(efficiency))

        if self.game_result is not None and not isinstance(self.game_result, str):
            raise StatsValidationError("game_result", "game_result must be a string")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GameSessionResult":
        """Build a session result from loosely typed input (e.g. a decoded JSON body)."""
        missing = [name for name in ('score', 'lines_cleared') if data.get(name) is None]
        if missing:
            raise StatsValidationError(missing[0], f"{missing[0]} is required")

        values = {name: _coerce_int(name, data.get(name, 0) or 0) for name in _SESSION_INT_FIELDS}
        efficiency = data.get('placement_efficiency', 0) or 0
        if isinstance(efficiency, str):
            try:
                efficiency = float(efficiency)
            except ValueError:
                raise StatsValidationError("placement_efficiency", "placement_efficiency must be a number")
        return cls(placement_efficiency=efficiency, game_result=data.get('game_result'), **values)


@dataclass(frozen=True)
class StatisticsRecord:
    """One user's lifetime aggregate. best_duration of 0 means unset."""
    user_id: Optional[int] = None
    total_games: int = 0
    total_score: int = 0
    best_score: int = 0
    total_lines_cleared: int = 0
    best_lines_cleared: int = 0
    total_figures_placed: int = 0
    total_duration: int = 0
    best_duration: int = 0
    total_moves: int = 0
    avg_placement_efficiency: float = 0.0
    current_games_streak: int = 0
    best_games_streak: int = 0
    rating: float = Config.DEFAULT_RATING
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    def average_score(self) -> float:
        return _safe_ratio(self.total_score, self.total_games)

    def average_lines_cleared(self) -> float:
        return _safe_ratio(self.total_lines_cleared, self.total_games)

    def average_duration(self) -> float:
        return _safe_ratio(self.total_duration, self.total_games)

    def average_moves(self) -> float:
        return _safe_ratio(self.total_moves, self.total_games)

    def score_per_minute(self) -> float:
        return _safe_ratio(self.total_score * SummaryConstants.SECONDS_PER_MINUTE, self.total_duration)

    def meets_thresholds(self, min_games: int = 0, min_avg_score: float = 0) -> bool:
        """Check whether the record qualifies for threshold-gated views."""
        if min_games and self.total_games < min_games:
            return False
        if min_avg_score and self.average_score() < min_avg_score:
            return False
        return True

    def summary(self) -> "StatisticsSummary":
        """Derived read view; averages are computed here and never stored."""
        return StatisticsSummary(
            user_id=self.user_id,
            total_games=self.total_games,
            total_score=self.total_score,
            average_score=self.average_score(),
            best_score=self.best_score,
            total_lines_cleared=self.total_lines_cleared,
            average_lines_cleared=self.average_lines_cleared(),
            best_lines_cleared=self.best_lines_cleared,
            total_duration=self.total_duration,
            average_duration=self.average_duration(),
            best_duration=self.best_duration,
            average_moves=self.average_moves(),
            score_per_minute=self.score_per_minute(),
            avg_placement_efficiency=round(self.avg_placement_efficiency, SummaryConstants.AVERAGE_PRECISION),
            rating=self.rating,
            current_games_streak=self.current_games_streak,
            best_games_streak=self.best_games_streak,
        )


@dataclass(frozen=True)
class StatisticsSummary:
    """Display view of a user's statistics."""
    user_id: Optional[int]
    total_games: int
    total_score: int
    average_score: float
    best_score: int
    total_lines_cleared: int
    average_lines_cleared: float
    best_lines_cleared: int
    total_duration: int
    average_duration: float
    best_duration: int
    average_moves: float
    score_per_minute: float
    avg_placement_efficiency: float
    rating: float
    current_games_streak: int
    best_games_streak: int
