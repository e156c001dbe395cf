"""
Database Service - durable store engine and session management.

Purpose
-------
Centralized async engine and session management for the secondary relational
store that mirrors durability-critical fields (paid items, weekly purchase
counters, streak snapshots, duel log).

Responsibilities
----------------
- Initialize and manage a single AsyncEngine instance
- Provide async context managers for sessions and atomic transactions
- Enforce transaction discipline: commit on success, rollback on exception
- Create the schema for local runs and tests
- Expose a lightweight health check

Architecture Notes
------------------
- `get_transaction()` is the interface for all mirror writes.
- NullPool when testing; StaticPool for in-memory SQLite so every session
  sees the same database; QueuePool otherwise.
- Configuration comes from Config (DATABASE_URL, DATABASE_ECHO,
  DATABASE_POOL_SIZE, DATABASE_MAX_OVERFLOW).

Usage Example
-------------
>>> await DatabaseService.initialize()
>>> async with DatabaseService.get_transaction() as session:
...     session.add(DuelLog(...))
"""

from __future__ import annotations

import asyncio
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncGenerator, Optional, Type

from sqlalchemy import text
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool, Pool, StaticPool

from src.core.config.config import Config
from src.core.database.base import Base
from src.core.logging.logger import get_logger

logger = get_logger(__name__)


class DatabaseInitializationError(RuntimeError):
    """Raised when database engine initialization fails."""


class DatabaseNotInitializedError(RuntimeError):
    """Raised when database operations are attempted before initialization."""


@dataclass(frozen=True)
class _DatabaseConfigSnapshot:
    url: str
    echo: bool
    pool_class: Optional[Type[Pool]]
    pool_size: int
    max_overflow: int

    @property
    def is_sqlite(self) -> bool:
        return self.url.startswith("sqlite")

    @property
    def url_scheme(self) -> str:
        return self.url.split(":", 1)[0] if ":" in self.url else "unknown"


class DatabaseService:
    """
    Centralized async database engine and session management.

    Public API
    ----------
    - initialize(url=None) / shutdown()
    - get_session() / get_transaction()
    - create_schema()
    - health_check()
    """

    _engine: Optional[AsyncEngine] = None
    _session_factory: Optional[async_sessionmaker[AsyncSession]] = None
    _config_snapshot: Optional[_DatabaseConfigSnapshot] = None
    _init_lock: Optional[asyncio.Lock] = None

    # ========================================================================
    # Initialization & Shutdown
    # ========================================================================

    @classmethod
    def _lock(cls) -> asyncio.Lock:
        if cls._init_lock is None:
            cls._init_lock = asyncio.Lock()
        return cls._init_lock

    @classmethod
    def _build_config_snapshot(cls, url: Optional[str]) -> _DatabaseConfigSnapshot:
        database_url = url or Config.DATABASE_URL
        if not database_url or not isinstance(database_url, str):
            logger.error("DATABASE_URL is not configured or invalid")
            raise DatabaseInitializationError(
                "DATABASE_URL must be configured as a non-empty string"
            )

        pool_class: Optional[Type[Pool]] = None
        if database_url.startswith("sqlite") and ":memory:" in database_url:
            pool_class = StaticPool
        elif Config.is_testing():
            pool_class = NullPool

        return _DatabaseConfigSnapshot(
            url=database_url,
            echo=Config.DATABASE_ECHO,
            pool_class=pool_class,
            pool_size=Config.DATABASE_POOL_SIZE,
            max_overflow=Config.DATABASE_MAX_OVERFLOW,
        )

    @classmethod
    async def initialize(cls, url: Optional[str] = None) -> None:
        """
        Initialize the engine and session factory.

        Idempotent: returns immediately when already initialized.

        Raises
        ------
        DatabaseInitializationError
            If configuration is invalid or engine creation fails.
        """
        async with cls._lock():
            if cls._engine is not None:
                logger.debug("DatabaseService already initialized; skipping")
                return

            config = cls._build_config_snapshot(url)
            engine_kwargs: dict[str, Any] = {"echo": config.echo}
            if config.pool_class is not None:
                engine_kwargs["poolclass"] = config.pool_class
            elif not config.is_sqlite:
                engine_kwargs.update(
                    pool_size=config.pool_size,
                    max_overflow=config.max_overflow,
                    pool_pre_ping=True,
                )

            try:
                cls._engine = create_async_engine(config.url, **engine_kwargs)
            except Exception as exc:
                logger.error(
                    "DatabaseService initialization failed",
                    extra={"error": str(exc), "error_type": type(exc).__name__},
                    exc_info=True,
                )
                raise DatabaseInitializationError(
                    f"Database initialization failed: {exc}"
                ) from exc

            cls._session_factory = async_sessionmaker(
                bind=cls._engine,
                class_=AsyncSession,
                expire_on_commit=False,
            )
            cls._config_snapshot = config

            logger.info(
                "DatabaseService initialized successfully",
                extra={
                    "url_scheme": config.url_scheme,
                    "pool_class": config.pool_class.__name__ if config.pool_class else "default",
                },
            )

    @classmethod
    async def shutdown(cls) -> None:
        """Dispose the engine. Safe to call multiple times."""
        async with cls._lock():
            if cls._engine is None:
                return

            logger.info("Shutting down DatabaseService")
            try:
                await cls._engine.dispose()
            finally:
                cls._engine = None
                cls._session_factory = None
                cls._config_snapshot = None

    @classmethod
    def is_initialized(cls) -> bool:
        return cls._engine is not None

    @classmethod
    def _require_factory(cls) -> async_sessionmaker[AsyncSession]:
        if cls._session_factory is None:
            raise DatabaseNotInitializedError(
                "DatabaseService.initialize() must be called before use"
            )
        return cls._session_factory

    # ========================================================================
    # Schema
    # ========================================================================

    @classmethod
    async def create_schema(cls) -> None:
        """Create every table registered on Base.metadata."""
        if cls._engine is None:
            raise DatabaseNotInitializedError("Engine not initialized")

        # Register models on the metadata before create_all.
        import src.database.models  # noqa: F401

        async with cls._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info(
            "Database schema ensured",
            extra={"tables": sorted(Base.metadata.tables)},
        )

    # ========================================================================
    # Sessions & Transactions
    # ========================================================================

    @classmethod
    @asynccontextmanager
    async def get_session(cls) -> AsyncGenerator[AsyncSession, None]:
        """Read-only session; the caller controls any commit."""
        factory = cls._require_factory()
        async with factory() as session:
            yield session

    @classmethod
    @asynccontextmanager
    async def get_transaction(cls) -> AsyncGenerator[AsyncSession, None]:
        """Atomic transaction: commit on success, rollback on any exception."""
        factory = cls._require_factory()
        start = time.perf_counter()
        async with factory() as session:
            try:
                yield session
                await session.commit()
            except Exception as exc:
                await session.rollback()
                logger.error(
                    "Database transaction rolled back",
                    extra={
                        "error": str(exc),
                        "error_type": type(exc).__name__,
                        "duration_ms": round((time.perf_counter() - start) * 1000, 2),
                    },
                    exc_info=True,
                )
                raise

    # ========================================================================
    # Health Check
    # ========================================================================

    @classmethod
    async def health_check(cls) -> bool:
        """SELECT 1 against the engine; never raises."""
        if cls._engine is None:
            logger.warning("Health check called on uninitialized DatabaseService")
            return False

        try:
            async with cls._engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except (OperationalError, DBAPIError) as exc:
            logger.warning(
                "Database health check failed",
                extra={"error": str(exc), "error_type": type(exc).__name__},
            )
            return False
