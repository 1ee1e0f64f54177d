"""
Statistics service for completed game sessions.

Applies each completed session to the user's lifetime record exactly once per
call. Updates for the same user are serialized by a per-user lock and a row
lock inside the transaction; updates for different users never wait on each
other. Transient storage failures restart the whole read-compute-write cycle
from a fresh read.
"""

import logging
from typing import Iterable, List, Optional
from sqlalchemy import select

from tactris.data_models.statistics import GameSessionResult, StatisticsRecord, StatisticsSummary
from tactris.database.models import GameStatistics
from tactris.services.base import BaseService
from tactris.utils.exceptions import StatsValidationError
from tactris.utils.locks import KeyedLock
from tactris.utils.rating import RatingCalculator
from tactris.utils.statistics import StatisticsAccumulator

logger = logging.getLogger(__name__)


class StatisticsService(BaseService):
    """Service owning every write to GameStatistics rows."""

    def __init__(self, session_factory, accumulator: Optional[StatisticsAccumulator] = None, **retry_options):
        super().__init__(session_factory, **retry_options)
        self.accumulator = accumulator or StatisticsAccumulator()
        self._user_locks = KeyedLock()

    async def record_session_completion(self, user_id: int, session_result: GameSessionResult) -> StatisticsRecord:
        """
        Apply one completed session to the user's statistics.

        Not idempotent: calling twice for the same session counts it twice.

        Raises:
            StatsValidationError: invalid input, raised before touching storage
            RetryExhaustedError: transient failures outlasted the retry budget
            FatalPersistenceError: non-transient storage failure
        """
        self._validate_user_id(user_id)
        if not isinstance(session_result, GameSessionResult):
            raise StatsValidationError("session", "session must be a GameSessionResult")

        async def attempt() -> StatisticsRecord:
            return await self._apply_session_attempt(user_id, session_result)

        record = await self.execute_with_retry(attempt, operation=f"statistics update for user {user_id}")
        logger.info(
            f"Updated statistics for user {user_id}: games={record.total_games}, "
            f"best_score={record.best_score}, rating={record.rating:g}"
        )
        return record

    async def _apply_session_attempt(self, user_id: int, session_result: GameSessionResult) -> StatisticsRecord:
        """Single lock-read-compute-write-commit attempt. Nothing computed here outlives a failure."""
        async with self._user_locks.hold(user_id):
            async with self.get_session() as session:
                async with session.begin():
                    stats = await session.scalar(GameStatistics.for_user_query(user_id, lock=True))

                    if stats is None:
                        record = self.accumulator.initial_record(user_id, session_result)
                        stats = GameStatistics(user_id=user_id)
                        stats.update_from_record(record)
                        session.add(stats)
                        logger.debug(f"Creating statistics for user {user_id}")
                    else:
                        current = stats.to_record()
                        record = self.accumulator.apply_session(current, session_result)
                        stats.update_from_record(record)
                        logger.debug(
                            f"User {user_id} rating change "
                            f"{RatingCalculator.format_rating_change(record.rating - current.rating)}"
                        )

                    await session.flush()
            return record

    async def reset_streak(self, user_id: int) -> Optional[StatisticsRecord]:
        """Persist a streak reset. Returns None when the user has no statistics."""
        self._validate_user_id(user_id)

        async def attempt() -> Optional[StatisticsRecord]:
            async with self._user_locks.hold(user_id):
                async with self.get_session() as session:
                    async with session.begin():
                        stats = await session.scalar(GameStatistics.for_user_query(user_id, lock=True))
                        if stats is None:
                            return None
                        record = self.accumulator.reset_streak(stats.to_record())
                        stats.update_from_record(record)
                return record

        record = await self.execute_with_retry(attempt, operation=f"streak reset for user {user_id}")
        if record is not None:
            logger.info(f"Reset games streak for user {user_id}")
        return record

    async def get_statistics(self, user_id: int) -> Optional[StatisticsRecord]:
        """Current record, None when the user has not completed a session yet."""
        self._validate_user_id(user_id)

        async def attempt() -> Optional[StatisticsRecord]:
            async with self.get_session() as session:
                stats = await session.scalar(GameStatistics.for_user_query(user_id))
                return stats.to_record() if stats else None

        return await self.execute_with_retry(attempt, operation=f"statistics read for user {user_id}")

    async def get_user_statistics_summary(self, user_id: int) -> Optional[StatisticsSummary]:
        """Display view with averages computed on read."""
        record = await self.get_statistics(user_id)
        return record.summary() if record else None

    async def get_aggregated_statistics(
        self,
        user_ids: Iterable[int],
        min_games: int = 0,
        min_avg_score: float = 0
    ) -> StatisticsRecord:
        """
        Roll several users' records into one.

        Users without statistics, or below the min_games / min_avg_score
        thresholds, are left out of the rollup.
        """
        user_ids = list(dict.fromkeys(user_ids))
        for user_id in user_ids:
            self._validate_user_id(user_id)
        if not user_ids:
            return self.accumulator.aggregate([])

        async def attempt() -> List[StatisticsRecord]:
            async with self.get_session() as session:
                result = await session.execute(
                    select(GameStatistics)
                    .where(GameStatistics.user_id.in_(user_ids))
                    .order_by(GameStatistics.user_id)
                )
                return [stats.to_record() for stats in result.scalars().all()]

        records = await self.execute_with_retry(attempt, operation="statistics aggregation")
        qualified = [record for record in records if record.meets_thresholds(min_games, min_avg_score)]
        return self.accumulator.aggregate(qualified)

    @staticmethod
    def _validate_user_id(user_id: int) -> None:
        if isinstance(user_id, bool) or not isinstance(user_id, int) or user_id <= 0:
            raise StatsValidationError("user_id", "user_id must be a positive integer")
