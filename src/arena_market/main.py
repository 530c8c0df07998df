"""
Arena Market entry point.

Starts one market session for this process:

- settings store and actor directory (PostgreSQL, or in memory)
- broadcast transport (Redis pub/sub, or an in-process hub)
- catalog packs from ``MARKET_CATALOG_DIR``

then serves until SIGINT/SIGTERM and tears everything down in reverse.
"""

import asyncio
import signal
import sys
from typing import Optional

from arena_market.core.config.config import Config
from arena_market.core.database.service import DatabaseService
from arena_market.core.event.transport import (
    BroadcastTransport,
    InProcessHub,
    RedisTransport,
    channel_for,
)
from arena_market.core.logging.logger import LogContext, get_logger, setup_logging, shutdown_logging
from arena_market.core.redis.service import RedisService
from arena_market.modules.market.actors import ActorDirectory, MemoryActorDirectory, SqlActorDirectory
from arena_market.modules.market.catalog import YamlCatalogSource
from arena_market.modules.market.repository import MarketRepository
from arena_market.modules.market.session import MarketSession
from arena_market.modules.market.store import MemorySettingsStore, SettingsStore, SqlSettingsStore

logger = get_logger(__name__)


async def _open_storage() -> tuple[SettingsStore, ActorDirectory]:
    if not Config.DATABASE_URL:
        logger.warning("DATABASE_URL not set; settings and actors live in memory only")
        return MemorySettingsStore(), MemoryActorDirectory()

    await DatabaseService.initialize()
    await DatabaseService.create_schema()
    if not await DatabaseService.health_check():
        logger.warning("Database reachable at startup but health check failed")
    store = SqlSettingsStore(Config.MARKET_MODULE_ID, modified_by=Config.MARKET_SESSION_ID)
    return store, SqlActorDirectory()


async def _open_transport() -> BroadcastTransport:
    channel = channel_for(Config.MARKET_MODULE_ID)
    if not Config.REDIS_URL:
        logger.warning("REDIS_URL not set; notifications stay inside this process")
        return InProcessHub().connect(channel)

    await RedisService.initialize()
    return RedisTransport(channel)


async def start_session() -> MarketSession:
    """Build every collaborator from ``Config`` and start the session."""
    async with LogContext(component="bootstrap", session_id=Config.MARKET_SESSION_ID):
        logger.info("Starting Arena Market", extra=Config.get_config_summary())

        store, actors = await _open_storage()
        transport = await _open_transport()

        catalog = YamlCatalogSource(Config.MARKET_CATALOG_DIR)
        await catalog.load()

        session = MarketSession(
            session_id=Config.MARKET_SESSION_ID,
            user_name=Config.MARKET_USER_NAME,
            authoritative=Config.MARKET_AUTHORITATIVE,
            repository=MarketRepository(store, default_currency=Config.MARKET_DEFAULT_CURRENCY),
            catalog=catalog,
            actors=actors,
            transport=transport,
            request_timeout=Config.request_timeout(),
        )
        await session.start()

        logger.info(
            "Market session ready",
            extra={
                "store": type(store).__name__,
                "channel": transport.channel,
                "authoritative": session.authoritative,
            },
        )
        return session


async def stop_session(session: Optional[MarketSession]) -> None:
    """Stop the session, then the services it used. Each step runs even if one before it failed."""
    steps = []
    if session is not None:
        steps.append(("market session", session.stop))
    steps += [("redis", RedisService.shutdown), ("database", DatabaseService.shutdown)]

    for name, stop in steps:
        try:
            await stop()
        except Exception as exc:
            logger.error(f"Error stopping {name}: {exc}", exc_info=True)

    logger.info("Arena Market stopped")


def _stop_on_signals(stop_event: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            logger.debug(f"{sig.name} handler not supported on this platform")


async def main(stop_event: Optional[asyncio.Event] = None) -> None:
    stop_event = stop_event or asyncio.Event()
    session: Optional[MarketSession] = None
    try:
        session = await start_session()
        _stop_on_signals(stop_event)
        await stop_event.wait()
    finally:
        await stop_session(session)


def run() -> None:
    setup_logging()
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Interrupted")
    except Exception as exc:
        logger.critical(f"Arena Market failed: {exc}", exc_info=True)
        sys.exit(1)
    finally:
        shutdown_logging()


if __name__ == "__main__":
    run()
