"""
Database Service - Core Infrastructure Layer

Purpose
-------
Owns the single AsyncEngine and session factory used by the verification
store. Provides read sessions and atomic transactions as async context
managers, a cheap health probe, and schema creation at startup.

Responsibilities
----------------
- Initialize and dispose one AsyncEngine with connection pooling
- `get_session()` for reads, `get_transaction()` for writes
  (commit on success, rollback on any exception)
- `create_schema()` to create missing tables on boot
- `health_check()` for the HTTP health endpoint

Non-Responsibilities
--------------------
- Record TTL and purge rules (VerificationStore)
- Migrations (tables are created, never altered)

Architecture Notes
------------------
- Classmethod singleton; `initialize()` is idempotent and lock-protected
- NullPool in the testing environment, the driver's default async queue
  pool otherwise
- All values come from Config unless `initialize(database_url=...)` is
  given an explicit URL (integration tests)

Usage Example
-------------
>>> async with DatabaseService.get_transaction() as session:
...     session.add(VerificationRecord(user_id=1, guild_id=2, email=e, code=c))

>>> async with DatabaseService.get_session() as session:
...     result = await session.execute(select(GuildConfig))
"""

from __future__ import annotations

import asyncio
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncGenerator, Optional

from sqlalchemy import text
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from emailgate.core.config.config import Config
from emailgate.core.database.base import Base
from emailgate.core.exceptions import DatabaseError
from emailgate.core.logging.logger import get_logger

logger = get_logger(__name__)


class DatabaseInitializationError(RuntimeError):
    """Raised when database engine initialization fails."""


class DatabaseNotInitializedError(RuntimeError):
    """Raised when database operations are attempted before initialization."""


@dataclass(frozen=True)
class _DatabaseSettings:
    url: str
    echo: bool
    use_null_pool: bool
    pool_size: int
    max_overflow: int
    pool_recycle: int

    @property
    def url_scheme(self) -> str:
        return self.url.split(":", 1)[0] if ":" in self.url else "unknown"


class DatabaseService:
    """
    Centralized async database engine and session management.

    Public API
    ----------
    - initialize() / shutdown()
    - create_schema()
    - get_session() / get_transaction()
    - health_check()
    """

    _engine: Optional[AsyncEngine] = None
    _session_factory: Optional[async_sessionmaker[AsyncSession]] = None
    _settings: Optional[_DatabaseSettings] = None
    _init_lock: asyncio.Lock = asyncio.Lock()

    # ========================================================================
    # Initialization & Shutdown
    # ========================================================================

    @classmethod
    def _build_settings(cls, database_url: Optional[str]) -> _DatabaseSettings:
        url = database_url or Config.DATABASE_URL
        if not url or not isinstance(url, str):
            raise DatabaseInitializationError(
                "DATABASE_URL must be configured as a non-empty string"
            )
        return _DatabaseSettings(
            url=url,
            echo=bool(Config.DATABASE_ECHO),
            use_null_pool=Config.is_testing(),
            pool_size=int(Config.DATABASE_POOL_SIZE),
            max_overflow=int(Config.DATABASE_MAX_OVERFLOW),
            pool_recycle=int(Config.DATABASE_POOL_RECYCLE),
        )

    @classmethod
    async def initialize(cls, database_url: Optional[str] = None) -> None:
        """
        Create the engine and session factory.

        Safe to call more than once; later calls are no-ops.

        Raises
        ------
        DatabaseInitializationError
            If the URL is missing or engine creation fails.
        """
        async with cls._init_lock:
            if cls._engine is not None:
                return

            try:
                settings = cls._build_settings(database_url)
                engine_kwargs: dict[str, Any] = {"echo": settings.echo}
                if settings.use_null_pool:
                    engine_kwargs["poolclass"] = NullPool
                else:
                    engine_kwargs.update(
                        pool_size=settings.pool_size,
                        max_overflow=settings.max_overflow,
                        pool_recycle=settings.pool_recycle,
                        pool_pre_ping=True,
                    )

                cls._engine = create_async_engine(settings.url, **engine_kwargs)
                cls._session_factory = async_sessionmaker(
                    bind=cls._engine,
                    class_=AsyncSession,
                    expire_on_commit=False,
                )
                cls._settings = settings
            except DatabaseInitializationError:
                raise
            except Exception as exc:
                logger.error(
                    "DatabaseService initialization failed",
                    extra={"error": str(exc), "error_type": type(exc).__name__},
                    exc_info=True,
                )
                raise DatabaseInitializationError(
                    f"Database initialization failed: {exc}"
                ) from exc

            logger.info(
                "DatabaseService initialized",
                extra={
                    "url_scheme": settings.url_scheme,
                    "null_pool": settings.use_null_pool,
                },
            )

    @classmethod
    async def shutdown(cls) -> None:
        """Dispose the engine. No-op when not initialized."""
        async with cls._init_lock:
            if cls._engine is None:
                return
            try:
                await cls._engine.dispose()
                logger.info("DatabaseService shutdown complete")
            finally:
                cls._engine = None
                cls._session_factory = None
                cls._settings = None

    @classmethod
    async def create_schema(cls) -> None:
        """Create every table registered on `Base.metadata` that does not exist."""
        cls._ensure_initialized()
        assert cls._engine is not None

        # Import for side effect: registers the models on Base.metadata
        import emailgate.database.models  # noqa: F401

        try:
            async with cls._engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        except (OperationalError, DBAPIError) as exc:
            raise DatabaseError("create_schema", exc) from exc

        logger.info(
            "Database schema ready",
            extra={"tables": sorted(Base.metadata.tables.keys())},
        )

    # ========================================================================
    # Health Check
    # ========================================================================

    @classmethod
    async def health_check(cls) -> bool:
        """
        Run `SELECT 1`. Never raises; returns False when the database is
        unreachable or the service is not initialized.
        """
        if cls._engine is None:
            return False

        start = time.perf_counter()
        try:
            async with cls._engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except Exception as exc:
            logger.warning(
                "Database health check failed",
                extra={
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                    "duration_ms": (time.perf_counter() - start) * 1000.0,
                },
            )
            return False

    # ========================================================================
    # Sessions
    # ========================================================================

    @classmethod
    def _ensure_initialized(cls) -> None:
        if cls._session_factory is None or cls._engine is None:
            raise DatabaseNotInitializedError(
                "DatabaseService must be initialized before use. "
                "Call DatabaseService.initialize() during startup."
            )

    @classmethod
    @asynccontextmanager
    async def get_session(cls) -> AsyncGenerator[AsyncSession, None]:
        """
        Session without automatic commit, for reads.

        Raises
        ------
        DatabaseNotInitializedError
            If the service has not been initialized.
        """
        cls._ensure_initialized()
        assert cls._session_factory is not None

        async with cls._session_factory() as session:
            yield session

    @classmethod
    @asynccontextmanager
    async def get_transaction(cls) -> AsyncGenerator[AsyncSession, None]:
        """
        Session wrapped in an atomic transaction.

        Commits when the block exits normally and rolls back on any exception,
        which is then re-raised. Never call `session.commit()` inside the block.
        """
        cls._ensure_initialized()
        assert cls._session_factory is not None

        start = time.perf_counter()
        async with cls._session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception as exc:
                await session.rollback()
                logger.warning(
                    "Database transaction rolled back",
                    extra={
                        "error_type": type(exc).__name__,
                        "duration_ms": (time.perf_counter() - start) * 1000.0,
                    },
                )
                raise
