from typing import Optional
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from contextlib import asynccontextmanager

from tactris.config import Config
from tactris.database.models import Base
from tactris.utils.logger import setup_logger

class Database:
    def __init__(self, database_url: Optional[str] = None):
        self.logger = setup_logger(__name__)
        self.database_url = database_url
        self.engine = None
        self.async_session = None

    @property
    def session_factory(self) -> async_sessionmaker:
        """Async session factory handed to the services"""
        if self.async_session is None:
            raise RuntimeError("Database is not initialized")
        return self.async_session

    async def initialize(self):
        """Initialize the database connection and create tables"""
        self.logger.info("Initializing database...")

        database_url = Config.get_async_database_url(self.database_url)

        engine_kwargs = {'echo': Config.DEBUG}
        if database_url.startswith('sqlite'):
            # Bound lock waits; an expired wait surfaces as a transient error
            engine_kwargs['connect_args'] = {'timeout': Config.DATABASE_LOCK_TIMEOUT}

        self.engine = create_async_engine(database_url, **engine_kwargs)
        if self.engine.dialect.name == 'sqlite':
            self._lock_on_begin(self.engine)

        self.async_session = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False
        )

        # Create all tables
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        self.logger.info("Database initialized successfully")

    @staticmethod
    def _lock_on_begin(engine):
        """
        Take the sqlite write lock when a transaction begins.

        pysqlite defers BEGIN until the first write and sqlite ignores
        SELECT ... FOR UPDATE, so a read-modify-write would otherwise read
        without any lock. Driver-level transaction handling is switched off
        and every transaction starts with BEGIN IMMEDIATE instead; a writer
        that cannot get the lock within the busy timeout fails with
        "database is locked", which the services retry.
        """
        @event.listens_for(engine.sync_engine, "connect")
        def _disable_driver_transactions(dbapi_connection, connection_record):
            dbapi_connection.isolation_level = None

        @event.listens_for(engine.sync_engine, "begin")
        def _begin_immediate(conn):
            conn.exec_driver_sql("BEGIN IMMEDIATE")

    @asynccontextmanager
    async def transaction(self):
        """
        Create a transaction boundary for atomic operations.

        All operations within the context will be committed together on success,
        or rolled back together on failure.

        Usage:
            async with db.transaction() as session:
                stats = await session.scalar(GameStatistics.for_user_query(user_id, lock=True))
                stats.update_from_record(record)
                # Commits here

        Important: Exceptions must be allowed to propagate out of the context
        for rollback to occur.
        """
        async with self.async_session() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise
            finally:
                await session.close()

    async def close(self):
        """Close the database connection"""
        if self.engine:
            await self.engine.dispose()
