"""
Unit Tests for MarketSocket
===========================

Test Coverage
-------------
- Notifications reach local listeners and the transport
- Own echoes are ignored; peer notifications reach the local bus
- Requests resolve on the matching, correctly addressed result
- Handler errors are answered instead of leaving the requester waiting
- Timeouts and shutdown of pending requests
"""

import asyncio

import pytest

from arena_market.core.event.bus import EventBus
from arena_market.core.exceptions import TransportError
from arena_market.modules.market.messages import MarketAction, MarketEvent, MarketMessage
from arena_market.modules.market.socket import MarketSocket


async def _started(transport, bus=None, session_id="player-1", **kwargs) -> MarketSocket:
    socket = MarketSocket(transport, bus or EventBus(name="socket-test"), session_id, **kwargs)
    await socket.start()
    return socket


def _inbound(mock_transport):
    """The handler the socket registered with the transport."""
    return mock_transport.start.await_args.args[0]


@pytest.mark.unit
class TestNotifications:
    """Test broadcast notifications."""

    async def test_emit_runs_local_listeners_then_broadcasts(self, mock_transport):
        """Local listeners see the event and the wire message names the sender."""
        # Arrange
        bus = EventBus(name="local")
        seen: list[dict] = []
        socket = await _started(mock_transport, bus, session_id="gm")
        socket.on(MarketEvent.SHOP_STATE_CHANGED, lambda p: seen.append(p))

        # Act
        await socket.emit(MarketEvent.SHOP_STATE_CHANGED, {"isOpen": True})

        # Assert
        assert seen == [{"isOpen": True}]
        mock_transport.publish.assert_awaited_once_with(
            {"payload": {"isOpen": True}, "sender": "gm", "event": "shopStateChanged"}
        )

    async def test_broadcast_failure_is_not_raised(self, mock_transport):
        """A failed broadcast is logged; local delivery already happened."""
        # Arrange
        mock_transport.publish.side_effect = TransportError("publish", ConnectionError("down"))
        socket = await _started(mock_transport)

        # Act & Assert (no exception)
        await socket.emit(MarketEvent.REFRESH_UI)

    async def test_own_echo_ignored_peer_notification_delivered(self, mock_transport):
        """Messages from this session are skipped; peers reach the bus."""
        # Arrange
        bus = EventBus(name="local")
        seen: list[dict] = []
        await _started(mock_transport, bus, session_id="player-1")
        bus.subscribe("itemPurchased", lambda p: seen.append(p), identifier="rec")
        on_message = _inbound(mock_transport)

        # Act
        await on_message({"event": "itemPurchased", "payload": {"n": 1}, "sender": "player-1"})
        await on_message({"event": "itemPurchased", "payload": {"n": 2}, "sender": "gm"})
        await on_message({"event": "somethingElse", "payload": {}, "sender": "gm"})

        # Assert
        assert seen == [{"n": 2}]

    async def test_off_removes_listener(self, mock_transport):
        """off() unsubscribes a listener registered with on()."""
        socket = await _started(mock_transport)
        identifier = socket.on(MarketEvent.REFRESH_UI, lambda p: None)
        assert socket.off(MarketEvent.REFRESH_UI, identifier) is True


@pytest.mark.unit
class TestRequests:
    """Test directed request/response."""

    async def test_request_resolves_on_matching_result(self, mock_transport):
        """The awaited result is the payload addressed back to this session."""
        # Arrange
        socket = await _started(mock_transport, session_id="player-1")
        on_message = _inbound(mock_transport)

        # Act
        task = asyncio.create_task(
            socket.request(MarketAction.PURCHASE_REQUEST, {"actorId": "a", "itemUuid": "i"})
        )
        await asyncio.sleep(0)
        sent = mock_transport.publish.await_args.args[0]
        request = MarketMessage.from_wire(sent)

        # A result for another session and one with a stale id are ignored.
        await on_message(request.reply({"result": "theirs"}, "gm").to_wire() | {"targetUser": "x"})
        await on_message(
            MarketMessage(
                action=MarketAction.PURCHASE_RESULT,
                payload={"result": "stale"},
                sender="gm",
                target_user="player-1",
                correlation_id="stale",
            ).to_wire()
        )
        await on_message(request.reply({"result": "ours"}, "gm").to_wire())
        payload = await asyncio.wait_for(task, timeout=1)

        # Assert
        assert sent["action"] == "purchaseRequest"
        assert sent["correlationId"]
        assert payload == {"result": "ours"}
        assert socket.pending_requests == 0

    async def test_request_times_out(self, mock_transport):
        """With a timeout configured an unanswered request raises."""
        socket = await _started(mock_transport, request_timeout=0.01)
        with pytest.raises(asyncio.TimeoutError):
            await socket.request(MarketAction.RESERVE_REQUEST, {})
        assert socket.pending_requests == 0

    async def test_stop_cancels_pending_requests(self, mock_transport):
        """Stopping the socket cancels anything still waiting."""
        # Arrange
        socket = await _started(mock_transport)
        task = asyncio.create_task(socket.request(MarketAction.PURCHASE_REQUEST, {}))
        await asyncio.sleep(0)

        # Act
        await socket.stop()

        # Assert
        with pytest.raises(asyncio.CancelledError):
            await task
        mock_transport.stop.assert_awaited_once()

    def test_handle_rejects_result_actions(self, mock_transport):
        """Only request actions can have handlers."""
        socket = MarketSocket(mock_transport, EventBus(), "gm")

        async def handler(message):
            return {}

        with pytest.raises(ValueError):
            socket.handle(MarketAction.PURCHASE_RESULT, handler)


@pytest.mark.unit
class TestAnswering:
    """Test the responding side."""

    async def test_handler_result_sent_to_requester(self, mock_transport):
        """The handler's payload goes back with the request's correlation id."""
        # Arrange
        socket = await _started(mock_transport, session_id="gm")

        async def handler(message):
            return {"result": {"success": True, "echo": message.payload["itemUuid"]}}

        socket.handle(MarketAction.PURCHASE_REQUEST, handler)
        request = MarketMessage.request(MarketAction.PURCHASE_REQUEST, {"itemUuid": "i"}, "p1")

        # Act
        await _inbound(mock_transport)(request.to_wire())

        # Assert
        reply = MarketMessage.from_wire(mock_transport.publish.await_args.args[0])
        assert reply.action is MarketAction.PURCHASE_RESULT
        assert reply.target_user == "p1"
        assert reply.correlation_id == request.correlation_id
        assert reply.payload == {"result": {"success": True, "echo": "i"}}

    async def test_handler_error_answered_with_error_payload(self, mock_transport):
        """A failing handler still answers, carrying the error."""
        # Arrange
        socket = await _started(mock_transport, session_id="gm")

        async def handler(message):
            raise RuntimeError("engine down")

        socket.handle(MarketAction.RESERVE_REQUEST, handler)
        request = MarketMessage.request(MarketAction.RESERVE_REQUEST, {}, "p1")

        # Act
        await _inbound(mock_transport)(request.to_wire())

        # Assert
        reply = MarketMessage.from_wire(mock_transport.publish.await_args.args[0])
        assert reply.action is MarketAction.RESERVE_RESULT
        assert reply.payload["error"] == {"error_type": "RuntimeError", "message": "engine down"}

    async def test_requests_without_handler_are_ignored(self, mock_transport):
        """Non-authoritative sessions do not answer requests."""
        await _started(mock_transport, session_id="p2")
        request = MarketMessage.request(MarketAction.PURCHASE_REQUEST, {}, "p1")
        await _inbound(mock_transport)(request.to_wire())
        mock_transport.publish.assert_not_awaited()
