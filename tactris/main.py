import asyncio
import logging
import traceback
from typing import Iterable, Optional, Union

from tactris.config import Config
from tactris.data_models.leaderboard import LeaderboardPage, Period, SortField
from tactris.data_models.statistics import GameSessionResult, StatisticsRecord, StatisticsSummary
from tactris.database.database import Database
from tactris.services.leaderboard import LeaderboardService
from tactris.services.statistics import StatisticsService
from tactris.utils.logger import setup_logger


class StatsEngine:
    """Wires the database and services together behind the engine's public operations"""

    def __init__(self, database_url: Optional[str] = None, **retry_options):
        self.database_url = database_url
        self.retry_options = retry_options
        self.db: Optional[Database] = None
        self.statistics_service: Optional[StatisticsService] = None
        self.leaderboard_service: Optional[LeaderboardService] = None
        self.logger = setup_logger(__name__)

    async def initialize(self):
        """Open the database and build the services"""
        self.logger.info("Setting up Tactris stats engine...")

        self.db = Database(self.database_url)
        await self.db.initialize()

        self.statistics_service = StatisticsService(self.db.session_factory, **self.retry_options)
        self.leaderboard_service = LeaderboardService(self.db.session_factory, **self.retry_options)

        self.logger.info("Tactris stats engine ready")

    def _require_ready(self):
        if self.statistics_service is None or self.leaderboard_service is None:
            raise RuntimeError("StatsEngine.initialize() must be awaited first")

    async def get_leaderboard(
        self,
        sort_by: Union[SortField, str] = SortField.SCORE,
        period: Optional[Union[Period, str]] = None,
        game_mode: Optional[str] = None,
        limit: Optional[int] = None
    ) -> LeaderboardPage:
        self._require_ready()
        return await self.leaderboard_service.get_leaderboard(sort_by, period, game_mode, limit)

    async def get_player_rank(
        self,
        user_id: int,
        sort_by: Union[SortField, str] = SortField.SCORE,
        period: Optional[Union[Period, str]] = Period.ALL_TIME,
        game_mode: Optional[str] = None
    ) -> Optional[int]:
        self._require_ready()
        return await self.leaderboard_service.get_player_rank(user_id, sort_by, period, game_mode)

    async def submit_entry(
        self,
        user_id: int,
        display_name: str,
        score: int,
        lines_cleared: int,
        game_mode: str = "classic"
    ) -> dict:
        self._require_ready()
        return await self.leaderboard_service.submit_entry(user_id, display_name, score, lines_cleared, game_mode)

    async def get_personal_bests(self, user_id: int) -> Optional[dict]:
        self._require_ready()
        return await self.leaderboard_service.get_personal_bests(user_id)

    async def purge_expired_entries(self) -> int:
        self._require_ready()
        return await self.leaderboard_service.purge_expired_entries()

    async def record_session_completion(
        self,
        user_id: int,
        session_result: Union[GameSessionResult, dict]
    ) -> StatisticsRecord:
        """Apply a completed session. Accepts a GameSessionResult or its dict form."""
        self._require_ready()
        if isinstance(session_result, dict):
            session_result = GameSessionResult.from_dict(session_result)
        return await self.statistics_service.record_session_completion(user_id, session_result)

    async def get_user_statistics_summary(self, user_id: int) -> Optional[StatisticsSummary]:
        self._require_ready()
        return await self.statistics_service.get_user_statistics_summary(user_id)

    async def get_aggregated_statistics(
        self,
        user_ids: Iterable[int],
        min_games: int = 0,
        min_avg_score: float = 0
    ) -> StatisticsRecord:
        self._require_ready()
        return await self.statistics_service.get_aggregated_statistics(user_ids, min_games, min_avg_score)

    async def close(self):
        """Cleanup when the engine is shutting down"""
        self.logger.info("Shutting down Tactris stats engine...")

        if self.db:
            await self.db.close()


async def main():
    """Main entry point: create the schema and purge expired leaderboard windows"""
    Config.validate()

    engine = StatsEngine()

    try:
        await engine.initialize()
        removed = await engine.purge_expired_entries()
        engine.logger.info(f"Maintenance complete, {removed} expired entries removed")
    except Exception as e:
        logging.error(f"Fatal error: {e}")
        traceback.print_exc()
        raise
    finally:
        await engine.close()

if __name__ == "__main__":
    asyncio.run(main())
