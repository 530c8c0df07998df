"""
Broadcast transports for cross-session market messages.

Purpose
-------
A transport is a broadcast channel scoped to one module namespace. Every
connected session receives every message, the sender included. There is no
persistence, no replay, and ordering is only guaranteed per sender. Targeting a
single session is an application-level concern handled above this layer.

Implementations
---------------
- ``InProcessHub`` / ``HubTransport``: all sessions live in one process. Each
  endpoint owns an ordered inbox drained by a single pump task, so messages
  from one sender are handled in the order they were published.
- ``RedisTransport``: sessions in different processes share a Redis pub/sub
  channel named ``module.<module id>``.

Messages cross both transports as JSON, so payloads must be JSON-serializable.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Awaitable, Callable, Optional, Protocol

from arena_market.core.exceptions import TransportError
from arena_market.core.logging.logger import get_logger
from arena_market.core.redis.service import RedisService

logger = get_logger(__name__)

MessageHandler = Callable[[dict[str, Any]], Awaitable[None]]


def channel_for(module_id: str) -> str:
    return f"module.{module_id}"


class BroadcastTransport(Protocol):
    """Structural interface shared by every broadcast transport."""

    channel: str

    async def start(self, handler: MessageHandler) -> None: ...

    async def publish(self, message: dict[str, Any]) -> None: ...

    async def stop(self) -> None: ...


# ============================================================================
# In-process hub
# ============================================================================


class HubTransport:
    """One session's endpoint on an ``InProcessHub``."""

    def __init__(self, hub: InProcessHub, channel: str) -> None:
        self._hub = hub
        self.channel = channel
        self._inbox: asyncio.Queue[dict[str, Any]] = asyncio.Queue()
        self._handler: Optional[MessageHandler] = None
        self._pump: Optional[asyncio.Task[None]] = None
        self._pending = 0

    @property
    def started(self) -> bool:
        return self._pump is not None

    async def start(self, handler: MessageHandler) -> None:
        if self._pump is not None:
            return
        self._handler = handler
        self._pump = asyncio.create_task(self._run(), name=f"hub-pump:{self.channel}")
        logger.debug("Hub endpoint started", extra={"channel": self.channel})

    async def publish(self, message: dict[str, Any]) -> None:
        if self not in self._hub.endpoints:
            raise TransportError("publish", channel=self.channel)
        # Serialize once so every receiver gets an independent copy.
        wire = json.dumps(message)
        self._hub.deliver(self.channel, wire)

    def _enqueue(self, wire: str) -> None:
        self._pending += 1
        self._inbox.put_nowait(json.loads(wire))

    async def _run(self) -> None:
        assert self._handler is not None
        while True:
            message = await self._inbox.get()
            try:
                await self._handler(message)
            except Exception as exc:
                logger.error(
                    "Hub endpoint handler failed",
                    extra={
                        "channel": self.channel,
                        "error": str(exc),
                        "error_type": type(exc).__name__,
                    },
                    exc_info=True,
                )
            finally:
                self._pending -= 1
                self._inbox.task_done()

    async def wait_idle(self) -> None:
        await self._inbox.join()

    @property
    def is_idle(self) -> bool:
        return self._pending == 0

    async def stop(self) -> None:
        self._hub.detach(self)
        if self._pump is not None:
            self._pump.cancel()
            try:
                await self._pump
            except asyncio.CancelledError:
                pass
            self._pump = None
        logger.debug("Hub endpoint stopped", extra={"channel": self.channel})


class InProcessHub:
    """
    Broadcast hub for sessions sharing one event loop.

    Examples
    --------
    >>> hub = InProcessHub()
    >>> gm = hub.connect("module.fuorid20-arena-market")
    >>> player = hub.connect("module.fuorid20-arena-market")
    """

    def __init__(self) -> None:
        self.endpoints: list[HubTransport] = []

    def connect(self, channel: str) -> HubTransport:
        endpoint = HubTransport(self, channel)
        self.endpoints.append(endpoint)
        return endpoint

    def detach(self, endpoint: HubTransport) -> None:
        if endpoint in self.endpoints:
            self.endpoints.remove(endpoint)

    def deliver(self, channel: str, wire: str) -> None:
        for endpoint in list(self.endpoints):
            if endpoint.channel == channel:
                endpoint._enqueue(wire)

    async def drain(self) -> None:
        """
        Wait until every started endpoint has handled everything queued,
        including messages published by handlers while draining.

        Must not be awaited from inside a message handler.
        """
        while True:
            running = [ep for ep in self.endpoints if ep.started]
            await asyncio.gather(*(ep.wait_idle() for ep in running))
            if all(ep.is_idle for ep in running):
                return


# ============================================================================
# Redis pub/sub
# ============================================================================


class RedisTransport:
    """Broadcast transport over a Redis pub/sub channel."""

    def __init__(self, channel: str) -> None:
        self.channel = channel
        self._pubsub: Any = None
        self._reader: Optional[asyncio.Task[None]] = None
        self._handler: Optional[MessageHandler] = None

    async def start(self, handler: MessageHandler) -> None:
        if self._reader is not None:
            return
        self._handler = handler
        try:
            self._pubsub = RedisService.pubsub()
            await self._pubsub.subscribe(self.channel)
        except TransportError:
            raise
        except Exception as exc:
            raise TransportError("subscribe", exc, channel=self.channel) from exc

        self._reader = asyncio.create_task(
            self._read_loop(), name=f"redis-reader:{self.channel}"
        )
        logger.info("Redis transport subscribed", extra={"channel": self.channel})

    async def _read_loop(self) -> None:
        assert self._handler is not None
        async for raw in self._pubsub.listen():
            if raw.get("type") != "message":
                continue
            try:
                message = json.loads(raw["data"])
            except (TypeError, ValueError) as exc:
                logger.warning(
                    "Dropping undecodable message",
                    extra={"channel": self.channel, "error": str(exc)},
                )
                continue
            try:
                await self._handler(message)
            except Exception as exc:
                logger.error(
                    "Redis transport handler failed",
                    extra={
                        "channel": self.channel,
                        "error": str(exc),
                        "error_type": type(exc).__name__,
                    },
                    exc_info=True,
                )

    async def publish(self, message: dict[str, Any]) -> None:
        await RedisService.publish(self.channel, json.dumps(message))

    async def stop(self) -> None:
        if self._reader is not None:
            self._reader.cancel()
            try:
                await self._reader
            except asyncio.CancelledError:
                pass
            self._reader = None

        if self._pubsub is not None:
            try:
                await self._pubsub.unsubscribe(self.channel)
                await self._pubsub.aclose()
            except Exception as exc:
                logger.warning(
                    "Error while closing Redis subscription",
                    extra={"channel": self.channel, "error": str(exc)},
                )
            self._pubsub = None
        logger.info("Redis transport stopped", extra={"channel": self.channel})
