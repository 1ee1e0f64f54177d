"""Shared fixtures for stats engine tests."""

import pytest
import pytest_asyncio

from tactris.config import Config
from tactris.database.database import Database
from tactris.services.leaderboard import LeaderboardService
from tactris.services.statistics import StatisticsService


@pytest.fixture(autouse=True)
def _console_logging_only(monkeypatch):
    monkeypatch.setattr(Config, "LOG_DIR", "")


@pytest_asyncio.fixture
async def database(tmp_path):
    db = Database(f"sqlite+aiosqlite:///{tmp_path / 'stats.db'}")
    await db.initialize()
    yield db
    await db.close()


@pytest.fixture
def statistics_service(database):
    # sqlite serializes writers; give lock contention room to retry
    return StatisticsService(database.session_factory, max_retries=10, retry_base_delay=0)


@pytest.fixture
def leaderboard_service(database):
    return LeaderboardService(database.session_factory, cache_ttl=0, max_retries=10, retry_base_delay=0)
