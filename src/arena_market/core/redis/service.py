"""
Process-wide redis.asyncio client.

Redis pub/sub is the cross-process broadcast channel: ``RedisTransport``
publishes market notifications and directed request/result messages
through ``publish`` and reads them back through ``pubsub``. Every Redis
failure surfaces as ``TransportError`` so callers handle one exception type
regardless of backend.
"""

from __future__ import annotations

import asyncio
import time
from typing import Optional

from redis.asyncio.client import PubSub, Redis as AsyncRedis  # type: ignore[misc]
from redis.exceptions import RedisError

from arena_market.core.config.config import Config
from arena_market.core.exceptions import TransportError
from arena_market.core.logging.logger import get_logger

logger = get_logger(__name__)


class RedisService:
    """Singleton client lifecycle. Classmethods only."""

    _client: Optional[AsyncRedis] = None
    _init_lock: asyncio.Lock = asyncio.Lock()

    @classmethod
    async def initialize(cls, url: Optional[str] = None) -> None:
        """
        Connect and PING. Idempotent.

        Raises
        ------
        TransportError
            No URL is configured or the server is unreachable.
        """
        async with cls._init_lock:
            if cls._client is not None:
                return

            redis_url = url or Config.REDIS_URL
            if not redis_url:
                raise TransportError("initialize", ValueError("REDIS_URL is not configured"))

            started = time.monotonic()
            client = AsyncRedis.from_url(
                redis_url,
                socket_timeout=Config.REDIS_SOCKET_TIMEOUT,
                decode_responses=True,
                health_check_interval=30,
            )
            try:
                await client.ping()  # type: ignore[misc]
            except (RedisError, OSError) as exc:
                await client.aclose()
                logger.critical(
                    "Redis unreachable",
                    extra={"error": str(exc), "error_type": type(exc).__name__},
                )
                raise TransportError("initialize", exc) from exc

            cls._client = client
            logger.info(
                "RedisService initialized",
                extra={"connect_ms": round((time.monotonic() - started) * 1000, 2)},
            )

    @classmethod
    async def shutdown(cls) -> None:
        """Close the client. Safe to call when never initialized."""
        client, cls._client = cls._client, None
        if client is None:
            return
        try:
            await client.aclose()
        except RedisError as exc:
            logger.warning("Redis close failed", extra={"error": str(exc)})
        else:
            logger.info("RedisService shut down")

    @classmethod
    async def health_check(cls) -> bool:
        """PING round trip. Never raises."""
        if cls._client is None:
            return False
        try:
            return bool(await cls._client.ping())  # type: ignore[misc]
        except (RedisError, OSError) as exc:
            logger.warning("Redis health check failed", extra={"error": str(exc)})
            return False

    @classmethod
    def client(cls) -> AsyncRedis:
        if cls._client is None:
            raise TransportError(
                "client", RuntimeError("RedisService.initialize() must be awaited first")
            )
        return cls._client

    @classmethod
    async def publish(cls, channel: str, data: str) -> int:
        """Publish one serialized message; returns how many subscribers got it."""
        try:
            return int(await cls.client().publish(channel, data))
        except RedisError as exc:
            logger.error(
                "Redis publish failed",
                extra={"channel": channel, "error": str(exc), "error_type": type(exc).__name__},
            )
            raise TransportError("publish", exc, channel=channel) from exc

    @classmethod
    def pubsub(cls) -> PubSub:
        return cls.client().pubsub(ignore_subscribe_messages=True)
