"""End-to-end tests for the StatsEngine facade."""

import pytest
import pytest_asyncio

from tactris.main import StatsEngine


@pytest_asyncio.fixture
async def engine(tmp_path):
    stats_engine = StatsEngine(f"sqlite+aiosqlite:///{tmp_path / 'engine.db'}", retry_base_delay=0)
    await stats_engine.initialize()
    yield stats_engine
    await stats_engine.close()


@pytest.mark.asyncio
async def test_operations_require_initialize():
    with pytest.raises(RuntimeError):
        await StatsEngine().get_leaderboard()


@pytest.mark.asyncio
async def test_session_to_summary(engine):
    assert await engine.get_user_statistics_summary(10) is None

    await engine.record_session_completion(10, {
        "score": 250, "lines_cleared": 8, "duration": 120, "placement_efficiency": 85,
    })
    summary = await engine.get_user_statistics_summary(10)

    assert summary.total_games == 1
    assert summary.average_score == 250.0
    assert summary.score_per_minute == 125.0
    assert summary.rating == pytest.approx(1013.8)


@pytest.mark.asyncio
async def test_submit_and_rank(engine):
    await engine.submit_entry(1, "alice", 500, 10)
    await engine.submit_entry(2, "bob", 500, 12)
    await engine.submit_entry(3, "carol", 700, 5)

    page = await engine.get_leaderboard("score", "all_time", "classic")

    assert [(entry.user_id, entry.rank) for entry in page.entries] == [(3, 1), (2, 2), (1, 3)]
    assert await engine.get_player_rank(1) == 3
    assert await engine.get_personal_bests(3) == {'best_score': 700, 'best_lines_cleared': 5}
    assert await engine.purge_expired_entries() == 0


@pytest.mark.asyncio
async def test_aggregated_statistics(engine):
    await engine.record_session_completion(1, {"score": 100, "lines_cleared": 1})
    await engine.record_session_completion(2, {"score": 300, "lines_cleared": 3})

    merged = await engine.get_aggregated_statistics([1, 2])

    assert merged.total_games == 2
    assert merged.best_score == 300
