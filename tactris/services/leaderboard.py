"""
Leaderboard service for score and lines-cleared rankings.

Loads a scoped set of entries, ranks the full scope with RankingEngine and
returns an optionally truncated window. Reads are not locked against
concurrent writers; a short TTL cache sits in front of them.
"""

from typing import Dict, List, Optional, Tuple, Union
from datetime import datetime
import asyncio
import logging
import time

from sqlalchemy import and_, delete, func, or_, select

from tactris.config import Config
from tactris.constants import StorageConstants
from tactris.data_models.leaderboard import LeaderboardPage, Period, RankedEntry, SortField
from tactris.database.models import LeaderboardEntry
from tactris.services.base import BaseService
from tactris.utils.exceptions import StatsValidationError
from tactris.utils.locks import KeyedLock
from tactris.utils.ranking import RankingEngine
from tactris.utils.time_utils import ensure_utc, utc_now

logger = logging.getLogger(__name__)


class LeaderboardService(BaseService):
    """Service for leaderboard queries and entry submission with caching."""

    def __init__(self, session_factory, cache_ttl: Optional[int] = None, **retry_options):
        super().__init__(session_factory, **retry_options)
        # TTL cache for leaderboard pages
        self._cache = {}
        self._cache_timestamps = {}
        self._cache_ttl = Config.LEADERBOARD_CACHE_TTL if cache_ttl is None else cache_ttl
        self._cache_max_size = 500
        self._cache_lock = asyncio.Lock()
        self._user_locks = KeyedLock()

    async def _is_cache_valid(self, key: str) -> bool:
        """Check if cached leaderboard data is still valid."""
        async with self._cache_lock:
            if key not in self._cache_timestamps:
                return False
            return time.time() - self._cache_timestamps[key] < self._cache_ttl

    async def _cleanup_cache(self):
        """Remove expired entries and enforce size limits."""
        async with self._cache_lock:
            current_time = time.time()
            expired_keys = [
                key for key, timestamp in self._cache_timestamps.items()
                if current_time - timestamp >= self._cache_ttl
            ]
            for key in expired_keys:
                self._cache.pop(key, None)
                self._cache_timestamps.pop(key, None)

            # Enforce size limit by removing oldest entries
            if len(self._cache) > self._cache_max_size:
                sorted_keys = sorted(self._cache_timestamps.items(), key=lambda x: x[1])
                keys_to_remove = [key for key, _ in sorted_keys[:len(self._cache) - self._cache_max_size]]
                for key in keys_to_remove:
                    self._cache.pop(key, None)
                    self._cache_timestamps.pop(key, None)

    async def clear_cache(self):
        """Clears the entire leaderboard cache."""
        async with self._cache_lock:
            self._cache.clear()
            self._cache_timestamps.clear()
        logger.debug("Leaderboard cache cleared.")

    @staticmethod
    def _validate_scope(
        sort_by: Union[SortField, str],
        period: Optional[Union[Period, str]],
        game_mode: Optional[str]
    ) -> Tuple[SortField, Optional[Period], Optional[str]]:
        sort_field = SortField.parse(sort_by)
        period = Period.parse(period) if period is not None else None
        if game_mode is not None and game_mode not in Config.get_game_modes():
            raise StatsValidationError("game_mode", f"Unknown game mode '{game_mode}'")
        return sort_field, period, game_mode

    @staticmethod
    def _is_current(entry: RankedEntry, now: datetime) -> bool:
        """Weekly and monthly entries only count inside their current window."""
        window_start = entry.period.window_start(now)
        return window_start is None or entry.created_at >= window_start

    async def _load_scope(self, period: Optional[Period], game_mode: Optional[str], now: datetime) -> List[RankedEntry]:
        since = period.window_start(now) if period is not None else None

        async def attempt() -> List[RankedEntry]:
            async with self.get_session() as session:
                result = await session.execute(LeaderboardEntry.scoped_query(period, game_mode, since))
                return [row.to_ranked_entry() for row in result.scalars().all()]

        entries = await self.execute_with_retry(attempt, operation="leaderboard read")
        return [entry for entry in entries if self._is_current(entry, now)]

    async def get_leaderboard(
        self,
        sort_by: Union[SortField, str] = SortField.SCORE,
        period: Optional[Union[Period, str]] = None,
        game_mode: Optional[str] = None,
        limit: Optional[int] = None
    ) -> LeaderboardPage:
        """
        Ranked leaderboard for a scope.

        Ranks are assigned over the full scope before the top-``limit`` window
        is cut, so they reflect position among every scoped entry.
        """
        sort_field, period, game_mode = self._validate_scope(sort_by, period, game_mode)
        if limit is None:
            limit = Config.LEADERBOARD_DEFAULT_LIMIT
        if isinstance(limit, bool) or not isinstance(limit, int) or not 1 <= limit <= Config.LEADERBOARD_MAX_LIMIT:
            raise StatsValidationError("limit", f"limit must be between 1 and {Config.LEADERBOARD_MAX_LIMIT}")

        now = utc_now()
        window = period.window_start(now) if period is not None else None
        cache_key = f"leaderboard:{sort_field.value}:{period.value if period else None}:{game_mode}:{limit}:{window}"
        if await self._is_cache_valid(cache_key):
            async with self._cache_lock:
                return self._cache[cache_key]

        await self._cleanup_cache()

        entries = await self._load_scope(period, game_mode, now)
        ranked = RankingEngine.rank_scope(entries, sort_field, period, game_mode)

        leaderboard_page = LeaderboardPage(
            entries=ranked[:limit],
            total_entries=len(ranked),
            sort_by=sort_field,
            period=period,
            game_mode=game_mode
        )

        async with self._cache_lock:
            self._cache[cache_key] = leaderboard_page
            self._cache_timestamps[cache_key] = time.time()

        return leaderboard_page

    async def get_player_rank(
        self,
        user_id: int,
        sort_by: Union[SortField, str] = SortField.SCORE,
        period: Optional[Union[Period, str]] = Period.ALL_TIME,
        game_mode: Optional[str] = None
    ) -> Optional[int]:
        """Get a user's rank within a scope, None when the user has no entry there."""
        sort_field, period, game_mode = self._validate_scope(sort_by, period, game_mode)
        entries = await self._load_scope(period, game_mode, utc_now())
        return RankingEngine.find_rank(entries, user_id, sort_field, period, game_mode)

    async def submit_entry(
        self,
        user_id: int,
        display_name: str,
        score: int,
        lines_cleared: int,
        game_mode: str = "classic"
    ) -> dict:
        """
        Record a finished game on the user's leaderboard entries, with retry logic.

        One entry is kept per (user, game_mode, period). Score and lines are
        kept as independent maxima; weekly and monthly entries left over from
        an earlier window are replaced.
        """
        self._validate_submission(user_id, display_name, score, lines_cleared, game_mode)

        async def attempt() -> dict:
            return await self._submit_entry_attempt(user_id, display_name, score, lines_cleared, game_mode)

        result = await self.execute_with_retry(attempt, operation=f"leaderboard submission for user {user_id}")
        await self.clear_cache()

        if result['is_personal_best']:
            logger.info(f"New personal best for user {user_id} in {game_mode}: {result['personal_best']}")
        return result

    async def _submit_entry_attempt(
        self,
        user_id: int,
        display_name: str,
        score: int,
        lines_cleared: int,
        game_mode: str
    ) -> dict:
        """Single attempt at entry submission with row locks on the user's entries."""
        async with self._user_locks.hold(user_id):
            return await self._write_entries(user_id, display_name, score, lines_cleared, game_mode)

    async def _write_entries(
        self,
        user_id: int,
        display_name: str,
        score: int,
        lines_cleared: int,
        game_mode: str
    ) -> dict:
        now = utc_now()
        async with self.get_session() as session:
            async with session.begin():
                result = await session.execute(
                    select(LeaderboardEntry)
                    .where(
                        LeaderboardEntry.user_id == user_id,
                        LeaderboardEntry.game_mode == game_mode,
                    )
                    .with_for_update()
                )
                rows: Dict[str, LeaderboardEntry] = {row.period: row for row in result.scalars().all()}

                previous_all_time = rows.get(Period.ALL_TIME.value)
                previous_best = previous_all_time.score if previous_all_time else None
                candidate = RankedEntry(
                    id=None, user_id=user_id, display_name=display_name, score=score,
                    lines_cleared=lines_cleared, game_mode=game_mode, created_at=now, updated_at=now
                )
                same_user = [previous_all_time.to_ranked_entry()] if previous_all_time else []
                is_pb = RankingEngine.is_personal_best(candidate, same_user, SortField.SCORE)

                for period in Period:
                    row = rows.get(period.value)
                    window_start = period.window_start(now)

                    if row is None:
                        session.add(LeaderboardEntry(
                            user_id=user_id,
                            display_name=display_name,
                            score=score,
                            lines_cleared=lines_cleared,
                            game_mode=game_mode,
                            period=period.value,
                            created_at=now,
                            updated_at=now
                        ))
                    elif window_start is not None and ensure_utc(row.created_at) < window_start:
                        # Entry belongs to an earlier window, start the new one fresh
                        row.score = score
                        row.lines_cleared = lines_cleared
                        row.display_name = display_name
                        row.created_at = now
                        row.updated_at = now
                    else:
                        row.display_name = display_name
                        if score > row.score:
                            row.score = score
                            row.updated_at = now
                        if lines_cleared > row.lines_cleared:
                            row.lines_cleared = lines_cleared
                            row.updated_at = now

                await session.flush()

        return {
            'is_personal_best': is_pb,
            'personal_best': score if previous_best is None else max(score, previous_best),
            'previous_best': previous_best if is_pb else None
        }

    async def get_personal_bests(self, user_id: int) -> Optional[dict]:
        """Best score and lines across all of a user's entries, None without entries."""
        async def attempt():
            async with self.get_session() as session:
                result = await session.execute(
                    select(
                        func.count(LeaderboardEntry.id),
                        func.max(LeaderboardEntry.score),
                        func.max(LeaderboardEntry.lines_cleared),
                    ).where(LeaderboardEntry.user_id == user_id)
                )
                return result.one()

        entry_count, best_score, best_lines = await self.execute_with_retry(attempt, operation="personal best read")
        if not entry_count:
            return None
        return {'best_score': int(best_score), 'best_lines_cleared': int(best_lines)}

    async def purge_expired_entries(self, now: Optional[datetime] = None) -> int:
        """Delete weekly and monthly entries from earlier windows. Returns rows removed."""
        now = ensure_utc(now) or utc_now()
        expired = or_(*[
            and_(LeaderboardEntry.period == period.value, LeaderboardEntry.created_at < period.window_start(now))
            for period in (Period.WEEKLY, Period.MONTHLY)
        ])

        async def attempt() -> int:
            async with self.get_session() as session:
                async with session.begin():
                    result = await session.execute(delete(LeaderboardEntry).where(expired))
                    return result.rowcount or 0

        removed = await self.execute_with_retry(attempt, operation="leaderboard purge")
        await self.clear_cache()
        logger.info(f"Purged {removed} expired leaderboard entries")
        return removed

    @staticmethod
    def _validate_submission(user_id: int, display_name: str, score: int, lines_cleared: int, game_mode: str) -> None:
        if isinstance(user_id, bool) or not isinstance(user_id, int) or user_id <= 0:
            raise StatsValidationError("user_id", "user_id must be a positive integer")
        if not isinstance(display_name, str) or not display_name.strip():
            raise StatsValidationError("display_name", "display_name is required")
        if len(display_name) > StorageConstants.MAX_DISPLAY_NAME_LENGTH:
            raise StatsValidationError("display_name", "display_name is too long")
        for name, value in (('score', score), ('lines_cleared', lines_cleared)):
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise StatsValidationError(name, f"{name} must be a non-negative integer")
            if value > StorageConstants.MAX_SESSION_VALUE:
                raise StatsValidationError(name, f"{name} exceeds {StorageConstants.MAX_SESSION_VALUE}")
        if game_mode not in Config.get_game_modes():
            raise StatsValidationError("game_mode", f"Unknown game mode '{game_mode}'")
