"""
Market Socket

Purpose
-------
Joins a session's local ``EventBus`` with the broadcast transport shared by
every session of the module.

- ``emit`` delivers a notification to local listeners (awaited) and then
  broadcasts it. Receivers skip their own echoes, so local listeners see each
  notification once.
- ``request`` sends a directed action and waits for the result carrying the
  same correlation id.
- ``handle`` registers the responder for a request action; its return value
  is sent back to the requester as the matching result action.

The transport delivers everything to everyone. Results addressed to another
session are dropped here, by ``targetUser``.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Mapping, Optional

from arena_market.core.event.bus import EventBus
from arena_market.core.event.transport import BroadcastTransport
from arena_market.core.event.types import CallbackType, ListenerPriority
from arena_market.core.exceptions import StructuredError, TransportError
from arena_market.core.logging.logger import LogContext, get_logger
from arena_market.modules.market.messages import MarketAction, MarketEvent, MarketMessage

logger = get_logger(__name__)

RequestHandler = Callable[[MarketMessage], Awaitable[Mapping[str, Any]]]


def _error_payload(exc: Exception) -> dict[str, Any]:
    if isinstance(exc, StructuredError):
        return exc.to_dict()
    return {"error_type": type(exc).__name__, "message": str(exc)}


class MarketSocket:
    """
    Notification and request/response layer of one session.

    Args:
        transport: Broadcast transport for the module channel
        event_bus: The session's local bus
        session_id: Identity used as ``sender`` and matched against ``targetUser``
        request_timeout: Seconds to wait for a result; None waits indefinitely
    """

    def __init__(
        self,
        transport: BroadcastTransport,
        event_bus: EventBus,
        session_id: str,
        request_timeout: Optional[float] = None,
    ) -> None:
        self._transport = transport
        self._bus = event_bus
        self.session_id = session_id
        self.request_timeout = request_timeout
        self._pending: dict[str, asyncio.Future[dict[str, Any]]] = {}
        self._handlers: dict[MarketAction, RequestHandler] = {}
        self._started = False

    @property
    def pending_requests(self) -> int:
        return len(self._pending)

    async def start(self) -> None:
        if self._started:
            return
        await self._transport.start(self._on_message)
        self._started = True
        logger.info(
            "Market socket started",
            extra={"session_id": self.session_id, "channel": self._transport.channel},
        )

    async def stop(self) -> None:
        for correlation_id, future in list(self._pending.items()):
            if not future.done():
                future.cancel()
            self._pending.pop(correlation_id, None)
        if self._started:
            await self._transport.stop()
            self._started = False
        logger.info("Market socket stopped", extra={"session_id": self.session_id})

    # ========================================================================
    # NOTIFICATIONS
    # ========================================================================

    def on(
        self,
        event: MarketEvent,
        callback: CallbackType,
        *,
        priority: ListenerPriority = ListenerPriority.NORMAL,
    ) -> str:
        return self._bus.subscribe(event.value, callback, priority=priority)

    def off(self, event: MarketEvent, identifier: str) -> bool:
        return self._bus.unsubscribe(event.value, identifier)

    async def emit(self, event: MarketEvent, payload: Optional[Mapping[str, Any]] = None) -> None:
        payload = dict(payload or {})
        await self._bus.publish(event.value, payload)
        try:
            await self._transport.publish(
                MarketMessage.notification(event, payload, self.session_id).to_wire()
            )
        except TransportError as exc:
            # Broadcast is best effort; local listeners already ran.
            logger.warning(
                "Notification broadcast failed",
                extra={"event_name": event.value, "error": str(exc)},
            )

    # ========================================================================
    # REQUEST / RESPONSE
    # ========================================================================

    def handle(self, action: MarketAction, handler: RequestHandler) -> None:
        if not action.is_request:
            raise ValueError(f"{action.value} is not a request action")
        self._handlers[action] = handler

    async def request(
        self, action: MarketAction, payload: Mapping[str, Any]
    ) -> dict[str, Any]:
        """
        Send a directed request and wait for its result payload.

        Raises:
            TransportError: If the request cannot be published
            asyncio.TimeoutError: If a timeout is configured and expires
        """
        message = MarketMessage.request(action, payload, self.session_id)
        assert message.correlation_id is not None
        future: asyncio.Future[dict[str, Any]] = asyncio.get_running_loop().create_future()
        self._pending[message.correlation_id] = future

        try:
            await self._transport.publish(message.to_wire())
            logger.debug(
                "Request sent",
                extra={"action": action.value, "correlation_id": message.correlation_id},
            )
            if self.request_timeout is None:
                return await future
            return await asyncio.wait_for(future, self.request_timeout)
        finally:
            self._pending.pop(message.correlation_id, None)

    # ========================================================================
    # INBOUND
    # ========================================================================

    async def _on_message(self, wire: dict[str, Any]) -> None:
        message = MarketMessage.from_wire(wire)
        if message.sender == self.session_id:
            return

        if message.event is not None:
            await self._bus.publish(message.event.value, dict(message.payload))
            return

        if message.action is None:
            logger.debug("Ignoring unrecognized market message", extra={"keys": sorted(wire)})
            return

        if message.action.is_result:
            self._resolve(message)
        else:
            await self._answer(message)

    def _resolve(self, message: MarketMessage) -> None:
        if message.target_user != self.session_id:
            return

        future = self._pending.get(message.correlation_id or "")
        if future is None or future.done():
            logger.debug(
                "Result without a waiting request",
                extra={"correlation_id": message.correlation_id},
            )
            return
        future.set_result(dict(message.payload))

    async def _answer(self, message: MarketMessage) -> None:
        handler = self._handlers.get(message.action)  # type: ignore[arg-type]
        if handler is None:
            return

        async with LogContext(
            correlation_id=message.correlation_id,
            component="socket",
            requester=message.sender,
        ):
            try:
                payload = await handler(message)
            except Exception as exc:
                logger.error(
                    "Request handler failed",
                    extra={
                        "action": message.action.value if message.action else None,
                        "error": str(exc),
                        "error_type": type(exc).__name__,
                    },
                    exc_info=True,
                )
                payload = {"error": _error_payload(exc)}

            reply = message.reply(payload, self.session_id)
            try:
                await self._transport.publish(reply.to_wire())
            except TransportError as exc:
                logger.error(
                    "Failed to deliver request result",
                    extra={
                        "action": reply.action.value if reply.action else None,
                        "target_user": message.sender,
                        "error": str(exc),
                    },
                )
