"""
Base service class for the Tactris statistics engine.

Provides async database session management, transient-failure classification
and the bounded retry loop shared by every transactional operation.
"""

import asyncio
import logging
import random
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Awaitable, Callable, Optional, TypeVar
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from tactris.config import Config
from tactris.utils.exceptions import (
    FatalPersistenceError, RetryExhaustedError, TransientPersistenceError
)

logger = logging.getLogger(__name__)

T = TypeVar('T')

# PostgreSQL SQLSTATE codes expected to clear up on retry
TRANSIENT_SQLSTATES = {
    '40001',  # serialization_failure
    '40P01',  # deadlock_detected
    '55P03',  # lock_not_available (lock_timeout expired)
}
TRANSIENT_SQLSTATE_CLASSES = ('08',)  # connection exceptions
UNIQUE_VIOLATION_SQLSTATE = '23505'

# sqlite reports contention through the message only
TRANSIENT_SQLITE_MESSAGES = ('database is locked', 'database table is locked', 'database is busy')


def _sqlstate(error: DBAPIError) -> Optional[str]:
    orig = error.orig
    return getattr(orig, 'sqlstate', None) or getattr(orig, 'pgcode', None)


def is_transient_error(error: BaseException) -> bool:
    """
    Classify a persistence failure as transient (retry) or fatal.

    Transient: serialization failures, deadlocks, lock-wait expiry, dropped
    connections, and unique violations from two writers racing to create the
    same row. Everything else is fatal.
    """
    if isinstance(error, TransientPersistenceError):
        return True
    if not isinstance(error, DBAPIError):
        return False
    if error.connection_invalidated:
        return True

    sqlstate = _sqlstate(error)
    message = str(error.orig).lower()

    if isinstance(error, IntegrityError):
        return sqlstate == UNIQUE_VIOLATION_SQLSTATE or 'unique constraint failed' in message

    if sqlstate:
        return sqlstate in TRANSIENT_SQLSTATES or sqlstate.startswith(TRANSIENT_SQLSTATE_CLASSES)

    if isinstance(error, OperationalError):
        return any(fragment in message for fragment in TRANSIENT_SQLITE_MESSAGES)
    return False


class BaseService:
    """Base class for all services with async database session management."""

    def __init__(
        self,
        session_factory,
        max_retries: Optional[int] = None,
        retry_base_delay: Optional[float] = None,
        retry_max_delay: Optional[float] = None
    ):
        """
        Initialize base service with session factory.

        Args:
            session_factory: Async session factory from Database class
            max_retries: Attempt bound for transactional operations
            retry_base_delay: First backoff delay in seconds, doubled per attempt
            retry_max_delay: Backoff cap in seconds
        """
        self.session_factory = session_factory
        self.max_retries = Config.STATS_UPDATE_MAX_RETRIES if max_retries is None else max_retries
        self.retry_base_delay = Config.STATS_RETRY_BASE_DELAY if retry_base_delay is None else retry_base_delay
        self.retry_max_delay = Config.STATS_RETRY_MAX_DELAY if retry_max_delay is None else retry_max_delay
        if self.max_retries < 1:
            raise ValueError("max_retries must be at least 1")

    @asynccontextmanager
    async def get_session(self) -> AsyncGenerator[AsyncSession, None]:
        """Provide a transactional scope for async database operations."""
        session = self.session_factory()
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    def _backoff_delay(self, attempt: int) -> float:
        """Exponential backoff with jitter, capped."""
        if self.retry_base_delay <= 0:
            return 0.0
        delay = self.retry_base_delay * (2 ** (attempt - 1))
        delay += random.uniform(0, self.retry_base_delay)
        return min(delay, self.retry_max_delay)

    async def execute_with_retry(
        self,
        func: Callable[[], Awaitable[T]],
        operation: Optional[str] = None,
        max_retries: Optional[int] = None
    ) -> T:
        """
        Run ``func`` until it succeeds, retrying transient persistence failures.

        Each attempt must open its own transaction and re-read its inputs.
        Non-persistence exceptions propagate untouched.

        Raises:
            FatalPersistenceError: on a non-transient storage failure
            RetryExhaustedError: when every attempt failed transiently
        """
        operation = operation or getattr(func, '__name__', 'database operation')
        max_retries = max_retries or self.max_retries

        for attempt in range(1, max_retries + 1):
            try:
                return await func()
            except (SQLAlchemyError, TransientPersistenceError) as e:
                if not is_transient_error(e):
                    logger.error(f"Non-retryable database error during {operation}: {e}")
                    raise FatalPersistenceError(operation, str(e)) from e
                if attempt == max_retries:
                    logger.error(f"{operation} failed after {max_retries} attempts: {e}")
                    raise RetryExhaustedError(operation, max_retries) from e
                delay = self._backoff_delay(attempt)
                logger.warning(f"Retry attempt {attempt} for {operation} in {delay:.3f}s: {e}")
                await asyncio.sleep(delay)
