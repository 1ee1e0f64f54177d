"""Unit tests for transient-failure classification and the retry loop."""

import pytest
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError, ProgrammingError

from tactris.services.base import BaseService, is_transient_error
from tactris.utils.exceptions import (
    FatalPersistenceError, RetryExhaustedError, TransientPersistenceError
)


class _DriverError(Exception):
    """Stand-in for a driver exception carrying a PostgreSQL SQLSTATE."""

    def __init__(self, sqlstate, message="driver error"):
        super().__init__(message)
        self.sqlstate = sqlstate


def _wrap(error_class, orig, **kwargs):
    return error_class("SELECT 1", {}, orig, **kwargs)


class TestIsTransientError:
    @pytest.mark.parametrize("sqlstate", ["40001", "40P01", "55P03", "08006", "08003"])
    def test_transient_sqlstates(self, sqlstate):
        assert is_transient_error(_wrap(OperationalError, _DriverError(sqlstate)))

    @pytest.mark.parametrize("sqlstate", ["42P01", "22003", "42703"])
    def test_fatal_sqlstates(self, sqlstate):
        assert not is_transient_error(_wrap(ProgrammingError, _DriverError(sqlstate)))

    def test_unique_violation_is_transient(self):
        assert is_transient_error(_wrap(IntegrityError, _DriverError("23505")))
        assert is_transient_error(
            _wrap(IntegrityError, Exception("UNIQUE constraint failed: game_statistics.user_id"))
        )

    def test_other_integrity_errors_are_fatal(self):
        assert not is_transient_error(_wrap(IntegrityError, _DriverError("23514")))
        assert not is_transient_error(_wrap(IntegrityError, Exception("CHECK constraint failed: rating_floor_check")))

    def test_sqlite_lock_messages(self):
        assert is_transient_error(_wrap(OperationalError, Exception("database is locked")))
        assert not is_transient_error(_wrap(OperationalError, Exception("no such column: rating")))

    def test_invalidated_connection(self):
        assert is_transient_error(_wrap(DBAPIError, Exception("server closed the connection"), connection_invalidated=True))

    def test_non_database_errors(self):
        assert is_transient_error(TransientPersistenceError("update", "conflict"))
        assert not is_transient_error(ValueError("boom"))


class TestExecuteWithRetry:
    @pytest.fixture
    def service(self):
        return BaseService(session_factory=None, max_retries=4, retry_base_delay=0)

    @pytest.mark.asyncio
    async def test_success_returns_value(self, service):
        async def work():
            return 42

        assert await service.execute_with_retry(work) == 42

    @pytest.mark.asyncio
    async def test_retries_until_success(self, service):
        calls = []

        async def work():
            calls.append(1)
            if len(calls) < 3:
                raise TransientPersistenceError("work", "busy")
            return "done"

        assert await service.execute_with_retry(work, operation="work") == "done"
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_exhaustion(self, service):
        async def work():
            raise _wrap(OperationalError, Exception("database is locked"))

        with pytest.raises(RetryExhaustedError) as exc_info:
            await service.execute_with_retry(work, operation="work", max_retries=2)
        assert exc_info.value.attempts == 2

    @pytest.mark.asyncio
    async def test_fatal_error_wrapped(self, service):
        calls = []

        async def work():
            calls.append(1)
            raise _wrap(ProgrammingError, Exception("no such table: leaderboard_entries"))

        with pytest.raises(FatalPersistenceError) as exc_info:
            await service.execute_with_retry(work, operation="work")
        assert len(calls) == 1
        assert isinstance(exc_info.value.__cause__, ProgrammingError)

    @pytest.mark.asyncio
    async def test_other_exceptions_propagate_untouched(self, service):
        calls = []

        async def work():
            calls.append(1)
            raise KeyError("user")

        with pytest.raises(KeyError):
            await service.execute_with_retry(work)
        assert len(calls) == 1


class TestBackoff:
    def test_delay_grows_and_is_capped(self):
        service = BaseService(session_factory=None, retry_base_delay=0.1, retry_max_delay=1.0)

        assert 0.1 <= service._backoff_delay(1) <= 0.2
        assert 0.4 <= service._backoff_delay(3) <= 0.5
        assert service._backoff_delay(10) == 1.0

    def test_zero_base_delay_disables_sleep(self):
        service = BaseService(session_factory=None, retry_base_delay=0)
        assert service._backoff_delay(5) == 0.0

    def test_retry_bound_must_be_positive(self):
        with pytest.raises(ValueError):
            BaseService(session_factory=None, max_retries=0)
