"""
Async SQLAlchemy engine and session lifecycle.

Backs the SQL settings store and the SQL actor directory. Store code never
commits by hand: ``get_transaction()`` commits when the block exits cleanly
and rolls back when it raises, so a market write batch lands completely or
not at all.

    async with DatabaseService.get_transaction() as session:
        session.add(MarketSetting(namespace=ns, key=key, value=value))
"""

from __future__ import annotations

import asyncio
import time
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Optional

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from arena_market.core.config.config import Config
from arena_market.core.database.base import Base
from arena_market.core.logging.logger import get_logger

logger = get_logger(__name__)


class DatabaseInitializationError(RuntimeError):
    """Engine could not be created from the configured URL."""


class DatabaseNotInitializedError(RuntimeError):
    """A session was requested before ``initialize()``."""


def _engine_options() -> dict[str, Any]:
    options: dict[str, Any] = {"echo": Config.DATABASE_ECHO}
    if Config.is_testing():
        # Test containers come and go between event loops; never reuse connections.
        options["poolclass"] = NullPool
        return options

    options.update(
        pool_size=Config.DATABASE_POOL_SIZE,
        max_overflow=Config.DATABASE_MAX_OVERFLOW,
        pool_recycle=Config.DATABASE_POOL_RECYCLE,
        pool_pre_ping=True,
    )
    return options


class DatabaseService:
    """Process-wide engine plus session factories. Classmethods only."""

    _engine: Optional[AsyncEngine] = None
    _sessions: Optional[async_sessionmaker[AsyncSession]] = None
    _statement_timeout_ms: Optional[int] = None
    _init_lock: asyncio.Lock = asyncio.Lock()

    @classmethod
    async def initialize(cls, url: Optional[str] = None) -> None:
        """
        Create the engine. Idempotent.

        Raises
        ------
        DatabaseInitializationError
            No URL is configured, or SQLAlchemy rejects it.
        """
        async with cls._init_lock:
            if cls._engine is not None:
                return

            database_url = url or Config.DATABASE_URL
            if not database_url:
                raise DatabaseInitializationError("DATABASE_URL is not configured")

            scheme = database_url.split(":", 1)[0]
            try:
                engine = create_async_engine(database_url, **_engine_options())
            except (SQLAlchemyError, ImportError, ValueError) as exc:
                logger.error(
                    "Database engine creation failed",
                    extra={"url_scheme": scheme, "error_type": type(exc).__name__},
                    exc_info=True,
                )
                raise DatabaseInitializationError(f"Database initialization failed: {exc}") from exc

            cls._engine = engine
            cls._sessions = async_sessionmaker(bind=engine, expire_on_commit=False)
            cls._statement_timeout_ms = (
                Config.DATABASE_STATEMENT_TIMEOUT_MS if scheme.startswith("postgresql") else None
            )
            logger.info("DatabaseService initialized", extra={"url_scheme": scheme})

    @classmethod
    async def shutdown(cls) -> None:
        """Dispose the engine. Safe to call when never initialized."""
        async with cls._init_lock:
            engine, cls._engine, cls._sessions = cls._engine, None, None
            if engine is None:
                return
            await engine.dispose()
            logger.info("DatabaseService shut down")

    @classmethod
    def is_initialized(cls) -> bool:
        return cls._engine is not None

    @classmethod
    async def create_schema(cls) -> None:
        """Create every market table that does not exist yet."""
        engine = cls._require_engine()

        from arena_market.database import models  # noqa: F401  (registers tables)

        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database schema ensured", extra={"tables": sorted(Base.metadata.tables)})

    @classmethod
    async def health_check(cls) -> bool:
        """``SELECT 1`` round trip. Never raises."""
        if cls._engine is None:
            return False

        started = time.perf_counter()
        try:
            async with cls._engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except (SQLAlchemyError, OSError) as exc:
            logger.warning(
                "Database health check failed",
                extra={"error": str(exc), "error_type": type(exc).__name__},
            )
            return False

        logger.debug(
            "Database health check passed",
            extra={"latency_ms": round((time.perf_counter() - started) * 1000, 2)},
        )
        return True

    @classmethod
    def _require_engine(cls) -> AsyncEngine:
        if cls._engine is None or cls._sessions is None:
            raise DatabaseNotInitializedError(
                "DatabaseService.initialize() must be awaited during startup"
            )
        return cls._engine

    @classmethod
    def _new_session(cls) -> AsyncSession:
        cls._require_engine()
        assert cls._sessions is not None
        return cls._sessions()

    @classmethod
    async def _apply_statement_timeout(cls, session: AsyncSession) -> None:
        if cls._statement_timeout_ms is not None:
            await session.execute(
                text(f"SET LOCAL statement_timeout = {int(cls._statement_timeout_ms)}")
            )

    @classmethod
    @asynccontextmanager
    async def get_session(cls) -> AsyncGenerator[AsyncSession, None]:
        """Session for reads; nothing is committed on exit."""
        session = cls._new_session()
        try:
            await cls._apply_statement_timeout(session)
            yield session
        finally:
            await session.close()

    @classmethod
    @asynccontextmanager
    async def get_transaction(cls) -> AsyncGenerator[AsyncSession, None]:
        """Session that commits on clean exit and rolls back on any exception."""
        session = cls._new_session()
        started = time.perf_counter()
        try:
            await cls._apply_statement_timeout(session)
            yield session
            await session.commit()
        except Exception as exc:
            await session.rollback()
            logger.error(
                "Transaction rolled back",
                extra={
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                    "duration_ms": round((time.perf_counter() - started) * 1000, 2),
                },
            )
            raise
        finally:
            await session.close()
