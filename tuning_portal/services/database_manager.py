"""
Database Manager

Async database connection management using SQLAlchemy 2.0. Owns the engine
and session factory, creates the security tables idempotently on first use
and provides health checks for the persistence layer.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path

from sqlalchemy import text
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

import tuning_portal.models  # noqa: F401  registers all tables on Base.metadata
from tuning_portal.core.config import DatabaseSettings
from tuning_portal.models.database import Base

logger = logging.getLogger(__name__)


class DatabaseManager:
    """
    Database manager for the security pipeline.

    Every repository call opens its own session through ``get_session`` and
    commits before returning; there is no cross-call transaction.
    """

    def __init__(
        self,
        database_settings: DatabaseSettings | None = None,
        engine: AsyncEngine | None = None,
    ):
        """
        Initialize the database manager.

        Args:
            database_settings: Database configuration settings
            engine: Optional pre-built engine (tests share one in-memory engine)
        """
        self._settings = database_settings or DatabaseSettings()
        self._engine: AsyncEngine | None = engine
        self._owns_engine = engine is None
        self._session_factory: async_sessionmaker[AsyncSession] | None = None
        self._initialized = False

    @property
    def engine(self) -> AsyncEngine | None:
        """Get the database engine."""
        return self._engine

    @property
    def backend(self) -> str:
        """Get the database backend name."""
        if self._engine is not None:
            return self._engine.dialect.name
        return make_url(self._settings.url).get_backend_name()

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    def _create_engine(self) -> AsyncEngine:
        url = make_url(self._settings.url)
        kwargs: dict = {"echo": self._settings.echo}

        if url.get_backend_name() == "sqlite":
            database = url.database or ""
            if database in ("", ":memory:"):
                # One shared connection, otherwise each session sees an empty database
                kwargs["poolclass"] = StaticPool
                kwargs["connect_args"] = {"check_same_thread": False}
            else:
                Path(database).parent.mkdir(parents=True, exist_ok=True)
        else:
            kwargs["pool_pre_ping"] = True

        return create_async_engine(url, **kwargs)

    async def initialize(self) -> bool:
        """
        Initialize the database manager.

        Creates the engine, creates missing tables and verifies connectivity.

        Returns:
            True if initialization successful, False otherwise
        """
        if self._initialized:
            logger.warning("Database manager already initialized")
            return True

        try:
            if self._engine is None:
                self._engine = self._create_engine()
            self._session_factory = async_sessionmaker(
                self._engine, class_=AsyncSession, expire_on_commit=False
            )

            await self._create_tables()

            if not await self._ping():
                logger.error("Database health check failed after initialization")
                return False

            self._initialized = True
            logger.info(f"Database manager initialized successfully with {self.backend} backend")
            return True

        except Exception as e:
            logger.error(f"Failed to initialize database manager: {e}")
            return False

    async def _create_tables(self) -> None:
        """Create database tables using SQLAlchemy metadata (CREATE TABLE IF NOT EXISTS)."""
        if self._engine is None:
            msg = "Database engine not initialized"
            raise RuntimeError(msg)

        try:
            async with self._engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            logger.info("Database tables created/verified successfully")
        except Exception as e:
            logger.error(f"Failed to create database tables: {e}")
            raise

    async def _ping(self) -> bool:
        if self._engine is None:
            return False
        try:
            async with self._engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.warning(f"Database ping failed: {e}")
            return False

    async def health_check(self) -> bool:
        """
        Perform a health check on the database connection.

        Returns:
            True if the database is healthy, False otherwise
        """
        if not self._initialized:
            return False
        return await self._ping()

    @asynccontextmanager
    async def get_session(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Get an async database session context manager.

        Yields:
            AsyncSession instance for database operations

        Raises:
            RuntimeError: If the manager is not initialized
        """
        if not self._initialized or self._session_factory is None:
            msg = "Database manager not initialized"
            raise RuntimeError(msg)

        async with self._session_factory() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise

    async def cleanup(self) -> None:
        """Clean up database resources."""
        if self._engine is not None and self._owns_engine:
            await self._engine.dispose()
            self._engine = None
        self._session_factory = None
        if self._initialized:
            self._initialized = False
            logger.info("Database manager cleaned up successfully")

    async def shutdown(self) -> None:
        """Shutdown the database manager (alias for cleanup)."""
        await self.cleanup()
