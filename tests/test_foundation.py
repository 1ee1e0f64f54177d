"""
Tests for foundation components:
configuration, database initialization, locking and time windows.
"""

import asyncio
import logging
from datetime import datetime, timezone

import pytest
from sqlalchemy import inspect
from sqlalchemy.exc import OperationalError

from tactris.config import Config
from tactris.database.database import Database
from tactris.database.models import GameStatistics
from tactris.utils.locks import KeyedLock
from tactris.utils.logger import setup_logger
from tactris.utils.time_utils import ensure_utc, month_start, week_start


class TestConfig:
    def test_default_values(self):
        assert Config.DEFAULT_RATING == 1000
        assert Config.RATING_FLOOR == 100
        assert Config.LEADERBOARD_DEFAULT_LIMIT == 10

    def test_validate_accepts_defaults(self):
        Config.validate()

    def test_validate_rejects_bad_retry_bound(self, monkeypatch):
        monkeypatch.setattr(Config, "STATS_UPDATE_MAX_RETRIES", 0)
        with pytest.raises(ValueError):
            Config.validate()

    def test_async_url_conversion(self, monkeypatch):
        monkeypatch.setattr(Config, "DATABASE_URL", "sqlite:///stats.db")
        assert Config.get_async_database_url() == "sqlite+aiosqlite:///stats.db"

        monkeypatch.setattr(Config, "DATABASE_URL", "postgresql+asyncpg://db/stats")
        assert Config.get_async_database_url() == "postgresql+asyncpg://db/stats"
        assert Config.get_async_database_url("sqlite:///other.db") == "sqlite+aiosqlite:///other.db"

    def test_game_modes(self, monkeypatch):
        monkeypatch.setattr(Config, "GAME_MODES", " classic, challenge ,,")
        assert Config.get_game_modes() == ["classic", "challenge"]


class TestDatabase:
    def test_session_factory_requires_initialize(self):
        with pytest.raises(RuntimeError):
            Database("sqlite+aiosqlite:///:memory:").session_factory

    @pytest.mark.asyncio
    async def test_initialize_creates_tables(self, database):
        async with database.engine.connect() as conn:
            tables = await conn.run_sync(lambda sync_conn: inspect(sync_conn).get_table_names())

        assert {"game_statistics", "leaderboard_entries"} <= set(tables)

    @pytest.mark.asyncio
    async def test_plain_sqlite_url_gets_async_driver(self, tmp_path):
        db = Database(f"sqlite:///{tmp_path / 'plain.db'}")
        await db.initialize()
        try:
            assert db.engine.url.drivername == "sqlite+aiosqlite"
        finally:
            await db.close()


    @pytest.mark.asyncio
    async def test_transaction_takes_write_lock_before_first_write(self, tmp_path, monkeypatch):
        url = f"sqlite+aiosqlite:///{tmp_path / 'locks.db'}"
        holder = Database(url)
        await holder.initialize()
        monkeypatch.setattr(Config, "DATABASE_LOCK_TIMEOUT", 0.05)
        contender = Database(url)
        await contender.initialize()

        try:
            async with holder.transaction() as session:
                await session.scalar(GameStatistics.for_user_query(1, lock=True))

                with pytest.raises(OperationalError, match="database is locked"):
                    async with contender.transaction() as other:
                        await other.scalar(GameStatistics.for_user_query(1))
        finally:
            await contender.close()
            await holder.close()


class TestKeyedLock:
    @pytest.mark.asyncio
    async def test_same_key_serializes(self):
        locks = KeyedLock()
        order = []

        async def worker(name):
            async with locks.hold("user"):
                order.append(f"{name}-in")
                await asyncio.sleep(0.01)
                order.append(f"{name}-out")

        await asyncio.gather(worker("a"), worker("b"))

        assert order == ["a-in", "a-out", "b-in", "b-out"]

    @pytest.mark.asyncio
    async def test_different_keys_do_not_block(self):
        locks = KeyedLock()

        async with locks.hold(1):
            async with locks.hold(2):
                assert locks.is_locked(1)
                assert locks.is_locked(2)

        assert not locks.is_locked(1)

    @pytest.mark.asyncio
    async def test_released_locks_are_dropped(self):
        locks = KeyedLock()
        async with locks.hold("user"):
            assert "user" in locks._locks
        assert "user" not in locks._locks


class TestTimeWindows:
    def test_week_starts_monday_midnight(self):
        sunday = datetime(2025, 6, 8, 23, 30, tzinfo=timezone.utc)
        assert week_start(sunday) == datetime(2025, 6, 2, tzinfo=timezone.utc)

    def test_month_start(self):
        assert month_start(datetime(2025, 6, 18, 9, 0, tzinfo=timezone.utc)) == datetime(2025, 6, 1, tzinfo=timezone.utc)

    def test_naive_values_are_treated_as_utc(self):
        assert ensure_utc(datetime(2025, 1, 1, 12, 0)) == datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)
        assert ensure_utc(None) is None


class TestLogger:
    def test_module_loggers_share_package_handlers(self):
        first = setup_logger("tactris.services.statistics")
        second = setup_logger("tactris.database.database")

        package_logger = logging.getLogger("tactris")
        assert first.name == "tactris.services.statistics"
        assert second.propagate
        assert len(package_logger.handlers) >= 1
        assert not first.handlers

    def test_foreign_names_are_nested_under_package(self):
        assert setup_logger("__main__").name == "tactris.__main__"
