"""
Pytest Configuration and Fixtures for Arena Market Tests
=========================================================

Purpose
-------
Centralized test fixtures for the market test suite.

Responsibilities
----------------
- In-memory store, catalog and actor fixtures for unit tests
- Ledger, activity log and engine wiring
- In-process hub and connected GM/player sessions
- Testcontainers setup for PostgreSQL and Redis (integration tests)
- Mock fixtures for collaborators

Architecture Notes
------------------
- Unit tests use the in-memory store and the in-process hub (fast, isolated)
- Integration tests use testcontainers and skip when Docker is unavailable
- Sessions created through ``make_session`` are stopped at teardown
"""

from __future__ import annotations

import os

os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("LOG_LEVEL", "DEBUG")

from typing import AsyncGenerator, Awaitable, Callable, Generator

import pytest
import pytest_asyncio

from arena_market.core.event.bus import EventBus
from arena_market.core.event.transport import InProcessHub, channel_for
from arena_market.core.logging.logger import get_logger
from arena_market.modules.market.activity import ActivityLog
from arena_market.modules.market.actors import MemoryActorDirectory
from arena_market.modules.market.catalog import StaticCatalogSource
from arena_market.modules.market.constants import MODULE_ID
from arena_market.modules.market.engine import TransactionEngine
from arena_market.modules.market.ledger import ShopLedger
from arena_market.modules.market.repository import MarketRepository
from arena_market.modules.market.session import MarketSession
from arena_market.modules.market.store import MemorySettingsStore
from tests.factories import build_actors, build_catalog

logger = get_logger(__name__)

SessionFactory = Callable[..., Awaitable[MarketSession]]


# ============================================================================
# TESTCONTAINERS FIXTURES (Integration Tests)
# ============================================================================


@pytest.fixture(scope="session")
def postgres_container() -> Generator[object, None, None]:
    """
    Start PostgreSQL testcontainer for integration tests.

    Scope: session (container persists across all tests)
    Skips when Docker is not reachable.
    """
    from testcontainers.postgres import PostgresContainer

    container = PostgresContainer(image="postgres:17-alpine", driver="asyncpg")
    try:
        container.start()
    except Exception as exc:
        pytest.skip(f"PostgreSQL testcontainer unavailable: {exc}")

    logger.info("PostgreSQL testcontainer started: %s", container.get_connection_url())
    yield container

    logger.info("Stopping PostgreSQL testcontainer...")
    container.stop()


@pytest.fixture(scope="session")
def redis_container() -> Generator[object, None, None]:
    """
    Start Redis testcontainer for integration tests.

    Scope: session (container persists across all tests)
    Skips when Docker is not reachable.
    """
    from testcontainers.redis import RedisContainer

    container = RedisContainer(image="redis:7-alpine")
    try:
        container.start()
    except Exception as exc:
        pytest.skip(f"Redis testcontainer unavailable: {exc}")

    logger.info(
        "Redis testcontainer started: %s:%s",
        container.get_container_host_ip(),
        container.get_exposed_port(6379),
    )
    yield container

    logger.info("Stopping Redis testcontainer...")
    container.stop()


@pytest.fixture
def redis_url(redis_container) -> str:
    host = redis_container.get_container_host_ip()
    port = redis_container.get_exposed_port(6379)
    return f"redis://{host}:{port}/0"


@pytest_asyncio.fixture
async def database(postgres_container) -> AsyncGenerator[None, None]:
    """
    Initialize DatabaseService against the testcontainer with a fresh schema.

    Scope: function (tables dropped and recreated per test)
    """
    from arena_market.core.database.base import Base
    from arena_market.core.database.service import DatabaseService

    url = postgres_container.get_connection_url()
    await DatabaseService.initialize(url)
    engine = DatabaseService._engine
    assert engine is not None

    import arena_market.database.models  # noqa: F401  (register tables)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    yield

    await DatabaseService.shutdown()


# ============================================================================
# MARKET FIXTURES (Unit Tests)
# ============================================================================


@pytest.fixture
def store() -> MemorySettingsStore:
    return MemorySettingsStore()


@pytest.fixture
def repository(store) -> MarketRepository:
    return MarketRepository(store)


@pytest.fixture
def catalog() -> StaticCatalogSource:
    return build_catalog()


@pytest.fixture
def actors() -> MemoryActorDirectory:
    return build_actors()


@pytest.fixture
def event_bus() -> EventBus:
    return EventBus(name="test")


@pytest.fixture
def ledger(repository) -> ShopLedger:
    return ShopLedger(repository)


@pytest.fixture
def activity_log(repository) -> ActivityLog:
    return ActivityLog(repository)


@pytest.fixture
def engine(ledger, activity_log, repository, catalog, actors, event_bus) -> TransactionEngine:
    return TransactionEngine(
        ledger=ledger,
        activity_log=activity_log,
        repository=repository,
        catalog=catalog,
        actors=actors,
        event_bus=event_bus,
        logger=get_logger("tests.engine"),
    )


# ============================================================================
# SESSION FIXTURES
# ============================================================================


@pytest.fixture
def hub() -> InProcessHub:
    return InProcessHub()


@pytest_asyncio.fixture
async def make_session(hub, repository, catalog, actors) -> AsyncGenerator[SessionFactory, None]:
    """
    Factory for started sessions sharing one hub, store, catalog and actors.

    Usage:
        gm = await make_session("gm", authoritative=True)
        player = await make_session("player-1", user_name="Alice")
    """
    sessions: list[MarketSession] = []

    async def _make(
        session_id: str,
        *,
        authoritative: bool = False,
        user_name: str = "Gamemaster",
        request_timeout: float | None = None,
    ) -> MarketSession:
        session = MarketSession(
            session_id=session_id,
            user_name=user_name,
            authoritative=authoritative,
            repository=repository,
            catalog=catalog,
            actors=actors,
            transport=hub.connect(channel_for(MODULE_ID)),
            request_timeout=request_timeout,
        )
        await session.start()
        sessions.append(session)
        return session

    yield _make

    for session in reversed(sessions):
        await session.stop()


@pytest_asyncio.fixture
async def gm_session(make_session) -> MarketSession:
    return await make_session("gm-session", authoritative=True)


@pytest_asyncio.fixture
async def player_session(make_session, gm_session) -> MarketSession:
    return await make_session("player-alice", user_name="Alice")


# ============================================================================
# MOCK FIXTURES
# ============================================================================


@pytest.fixture
def mock_event_bus(mocker):
    """
    Mock EventBus for unit tests.

    Scope: function
    Uses: Unit tests that only assert on published events
    """
    mock_bus = mocker.MagicMock()
    mock_bus.publish = mocker.AsyncMock(return_value=[])
    mock_bus.subscribe = mocker.MagicMock(return_value="listener-id")
    mock_bus.unsubscribe = mocker.MagicMock(return_value=True)
    return mock_bus


@pytest.fixture
def mock_transport(mocker):
    """
    Mock broadcast transport that records published messages.

    Scope: function
    Uses: Socket tests that inspect outbound wire messages
    """
    transport = mocker.MagicMock()
    transport.channel = channel_for(MODULE_ID)
    transport.start = mocker.AsyncMock()
    transport.publish = mocker.AsyncMock()
    transport.stop = mocker.AsyncMock()
    return transport
