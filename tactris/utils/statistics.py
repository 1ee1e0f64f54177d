"""
Statistics accumulation for per-user lifetime records.

Implements the incremental per-session update, the rating adjustment and the
multi-record aggregation. All functions are pure: they build new
StatisticsRecord instances and never mutate their inputs.
"""

import math
from dataclasses import replace
from typing import Iterable, Optional

from tactris.config import Config
from tactris.data_models.statistics import GameSessionResult, StatisticsRecord
from tactris.utils.rating import RatingCalculator
from tactris.utils.time_utils import utc_now


class StatisticsAccumulator:
    """Owns every transition of a StatisticsRecord."""

    def __init__(self, default_rating: Optional[float] = None):
        self.default_rating = Config.DEFAULT_RATING if default_rating is None else default_rating

    def empty_record(self, user_id: Optional[int] = None) -> StatisticsRecord:
        return StatisticsRecord(user_id=user_id, rating=self.default_rating)

    def initial_record(self, user_id: int, session: GameSessionResult) -> StatisticsRecord:
        """First record for a user: one session applied to an empty record at the baseline rating."""
        return self.apply_session(self.empty_record(user_id), session)

    def apply_session(self, record: StatisticsRecord, session: GameSessionResult) -> StatisticsRecord:
        """
        Fold one completed session into a record.

        total_games is incremented before the efficiency mean is recomputed,
        so the running mean divides by the new game count.
        """
        total_games = record.total_games + 1

        current_streak = record.current_games_streak + 1
        best_streak = max(record.best_games_streak, current_streak)

        # 0 is the "unset" sentinel for best_duration
        best_duration = record.best_duration
        if best_duration == 0 or (0 < session.duration < best_duration):
            best_duration = session.duration

        avg_efficiency = (
            (record.avg_placement_efficiency * (total_games - 1)) + session.placement_efficiency
        ) / total_games

        return replace(
            record,
            total_games=total_games,
            current_games_streak=current_streak,
            best_games_streak=best_streak,
            total_score=record.total_score + session.score,
            best_score=max(record.best_score, session.score),
            total_lines_cleared=record.total_lines_cleared + session.lines_cleared,
            best_lines_cleared=max(record.best_lines_cleared, session.lines_cleared),
            total_figures_placed=record.total_figures_placed + session.figures_placed,
            total_duration=record.total_duration + session.duration,
            best_duration=best_duration,
            total_moves=record.total_moves + session.moves_count,
            avg_placement_efficiency=avg_efficiency,
            rating=self.rating_update(record, session),
            updated_at=utc_now(),
        )

    @staticmethod
    def rating_update(record: StatisticsRecord, session: GameSessionResult) -> float:
        """New rating after one session, floored at the minimum rating."""
        rating_change = RatingCalculator.calculate_rating_change(
            score=session.score,
            lines_cleared=session.lines_cleared,
            placement_efficiency=session.placement_efficiency,
            duration=session.duration,
        )
        return RatingCalculator.apply_rating_change(record.rating, rating_change)

    @staticmethod
    def reset_streak(record: StatisticsRecord) -> StatisticsRecord:
        """Clear the current streak. The caller decides when inactivity warrants it."""
        return replace(record, current_games_streak=0, updated_at=utc_now())

    def aggregate(self, records: Iterable[StatisticsRecord]) -> StatisticsRecord:
        """
        Merge several records into one rollup.

        Counters are summed, bests take the maximum, best_duration the smallest
        nonzero value, efficiency is weighted by games played and rating is the
        mean of the inputs rounded half-up. An empty input yields a zero record.
        """
        records = list(records)
        if not records:
            return replace(self.empty_record(), rating=0)

        total_games = sum(r.total_games for r in records)
        weighted_efficiency = sum(r.avg_placement_efficiency * r.total_games for r in records)
        nonzero_durations = [r.best_duration for r in records if r.best_duration > 0]
        user_ids = {r.user_id for r in records}
        mean_rating = sum(r.rating for r in records) / len(records)

        return StatisticsRecord(
            user_id=user_ids.pop() if len(user_ids) == 1 else None,
            total_games=total_games,
            total_score=sum(r.total_score for r in records),
            best_score=max(r.best_score for r in records),
            total_lines_cleared=sum(r.total_lines_cleared for r in records),
            best_lines_cleared=max(r.best_lines_cleared for r in records),
            total_figures_placed=sum(r.total_figures_placed for r in records),
            total_duration=sum(r.total_duration for r in records),
            best_duration=min(nonzero_durations) if nonzero_durations else 0,
            total_moves=sum(r.total_moves for r in records),
            avg_placement_efficiency=weighted_efficiency / total_games if total_games else 0.0,
            current_games_streak=max(r.current_games_streak for r in records),
            best_games_streak=max(r.best_games_streak for r in records),
            rating=math.floor(mean_rating + 0.5),
            created_at=min(r.created_at for r in records),
            updated_at=max(r.updated_at for r in records),
        )
