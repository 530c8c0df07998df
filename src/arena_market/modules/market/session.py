"""
Market Session

Purpose
-------
Everything one connected participant needs: the ledger and activity log
caches, the transaction engine, and the socket to the other sessions.

Exactly one session per module namespace is authoritative (the GM). It runs
every transaction and owns every write. Other sessions keep read-only caches,
refresh them when notified, and forward purchases and reservations to the
authoritative session as directed requests.

Usage
-----
    session = MarketSession(
        session_id="player-1",
        user_name="Alice",
        authoritative=False,
        repository=repository,
        catalog=catalog,
        actors=actors,
        transport=hub.connect(channel_for(MODULE_ID)),
    )
    await session.start()
    result = await session.purchase(actor_id, item_ref)
"""

from __future__ import annotations

import asyncio
from typing import Any, Optional

from arena_market.core.event.bus import EventBus
from arena_market.core.event.transport import BroadcastTransport
from arena_market.core.event.types import ListenerPriority
from arena_market.core.exceptions import TransportError
from arena_market.core.logging.logger import LogContext, get_logger
from arena_market.modules.market.activity import ActivityLog
from arena_market.modules.market.actors import ActorDirectory, ActorSnapshot
from arena_market.modules.market.catalog import CatalogSource
from arena_market.modules.market.constants import FailureReason
from arena_market.modules.market.engine import TransactionEngine, TransactionResult
from arena_market.modules.market.ledger import ShopLedger
from arena_market.modules.market.messages import MarketAction, MarketEvent, MarketMessage
from arena_market.modules.market.models import CatalogEntry, ShopConfig
from arena_market.modules.market.repository import MarketRepository
from arena_market.modules.market.socket import MarketSocket
from arena_market.modules.shared.exceptions import PermissionDeniedError

logger = get_logger(__name__)

CACHE_REFRESH_EVENTS = (
    MarketEvent.CONFIG_UPDATED,
    MarketEvent.ITEM_PURCHASED,
    MarketEvent.ITEM_RESERVED,
    MarketEvent.SHOP_STATE_CHANGED,
    MarketEvent.REFRESH_UI,
)


class MarketSession:
    """One participant in a market namespace."""

    def __init__(
        self,
        session_id: str,
        user_name: str,
        authoritative: bool,
        repository: MarketRepository,
        catalog: CatalogSource,
        actors: ActorDirectory,
        transport: BroadcastTransport,
        event_bus: Optional[EventBus] = None,
        request_timeout: Optional[float] = None,
    ) -> None:
        self.session_id = session_id
        self.user_name = user_name
        self.authoritative = authoritative
        self.catalog = catalog
        self.actors = actors
        self.events = event_bus or EventBus(name=f"market:{session_id}")

        self.ledger = ShopLedger(repository)
        self.activity_log = ActivityLog(repository)
        self.engine = TransactionEngine(
            ledger=self.ledger,
            activity_log=self.activity_log,
            repository=repository,
            catalog=catalog,
            actors=actors,
            event_bus=self.events,
            logger=get_logger(f"{__name__}.engine"),
        )
        self.socket = MarketSocket(
            transport, self.events, session_id, request_timeout=request_timeout
        )
        self._started = False

    # ========================================================================
    # LIFECYCLE
    # ========================================================================

    async def start(self) -> None:
        if self._started:
            return

        with LogContext(session_id=self.session_id, component="session"):
            await self.refresh_caches()

            if self.authoritative:
                self.socket.handle(MarketAction.PURCHASE_REQUEST, self._handle_purchase_request)
                self.socket.handle(MarketAction.RESERVE_REQUEST, self._handle_reserve_request)
            else:
                for event in CACHE_REFRESH_EVENTS:
                    self.socket.on(event, self._on_state_notification, priority=ListenerPriority.HIGH)

            await self.socket.start()
            self._started = True

            logger.info(
                "Market session started",
                extra={
                    "session_id": self.session_id,
                    "authoritative": self.authoritative,
                    "shop_open": self.ledger.shop_open,
                },
            )

    async def stop(self) -> None:
        if not self._started:
            return
        await self.socket.stop()
        self.events.clear()
        self._started = False
        logger.info("Market session stopped", extra={"session_id": self.session_id})

    async def refresh_caches(self) -> None:
        await self.ledger.refresh()
        await self.activity_log.refresh()

    async def _on_state_notification(self, payload: dict[str, Any]) -> None:
        await self.refresh_caches()

    # ========================================================================
    # PLAYER OPERATIONS
    # ========================================================================

    async def list_actors(self) -> list[ActorSnapshot]:
        """Characters this session's user may shop with."""
        return await self.actors.list_controllable_actors(self.user_name)

    async def purchase(self, actor_id: Optional[str], item_ref: str) -> TransactionResult:
        async with LogContext(session_id=self.session_id, actor_id=actor_id, item_ref=item_ref):
            refused = self._precheck(actor_id, item_ref)
            if refused is not None:
                return refused
            assert actor_id is not None

            if self.authoritative:
                result = await self.engine.purchase(actor_id, item_ref)
                await self._announce_purchase(result)
                return result

            return await self._forward(
                MarketAction.PURCHASE_REQUEST, actor_id, item_ref
            )

    async def reserve(self, actor_id: Optional[str], item_ref: str) -> TransactionResult:
        async with LogContext(session_id=self.session_id, actor_id=actor_id, item_ref=item_ref):
            refused = self._precheck(actor_id, item_ref)
            if refused is not None:
                return refused
            assert actor_id is not None

            if self.authoritative:
                result = await self.engine.reserve(actor_id, item_ref)
                await self._announce_reservation(result)
                return result

            return await self._forward(
                MarketAction.RESERVE_REQUEST, actor_id, item_ref
            )

    def _precheck(self, actor_id: Optional[str], item_ref: str) -> Optional[TransactionResult]:
        if not actor_id:
            return TransactionResult.failure(FailureReason.NO_ACTOR_SELECTED, item_ref=item_ref)
        if not self.ledger.shop_open:
            return TransactionResult.failure(FailureReason.SHOP_CLOSED, item_ref=item_ref)
        return None

    async def _forward(
        self, action: MarketAction, actor_id: str, item_ref: str
    ) -> TransactionResult:
        try:
            payload = await self.socket.request(
                action, {"actorId": actor_id, "itemUuid": item_ref}
            )
        except asyncio.TimeoutError as exc:
            logger.warning(
                "No answer from the authoritative session",
                extra={"action": action.value, "timeout": self.socket.request_timeout},
            )
            raise TransportError(action.value, exc, channel=None) from exc

        error = payload.get("error")
        if error:
            return TransactionResult(
                success=False,
                message=str(error.get("message") or "Request failed"),
                item_ref=item_ref,
            )
        return TransactionResult.from_dict(payload.get("result") or {})

    async def _announce_purchase(self, result: TransactionResult) -> None:
        if result.success:
            await self.socket.emit(
                MarketEvent.ITEM_PURCHASED,
                {"itemUuid": result.item_ref, "newStock": result.new_stock},
            )

    async def _announce_reservation(self, result: TransactionResult) -> None:
        if result.success:
            await self.socket.emit(
                MarketEvent.ITEM_RESERVED,
                {
                    "itemUuid": result.item_ref,
                    "actorName": result.actor_name,
                    "playerName": result.player_name,
                },
            )

    async def _handle_purchase_request(self, message: MarketMessage) -> dict[str, Any]:
        result = await self.engine.purchase(
            str(message.payload.get("actorId") or ""), str(message.payload.get("itemUuid") or "")
        )
        await self._announce_purchase(result)
        return {"result": result.to_dict()}

    async def _handle_reserve_request(self, message: MarketMessage) -> dict[str, Any]:
        result = await self.engine.reserve(
            str(message.payload.get("actorId") or ""), str(message.payload.get("itemUuid") or "")
        )
        await self._announce_reservation(result)
        return {"result": result.to_dict()}

    # ========================================================================
    # GM OPERATIONS
    # ========================================================================

    def _require_authority(self, action: str) -> None:
        if not self.authoritative:
            raise PermissionDeniedError(action, self.session_id)

    async def toggle_shop(self) -> bool:
        self._require_authority("toggle_shop")
        is_open = await self.ledger.toggle_shop()
        await self.socket.emit(MarketEvent.SHOP_STATE_CHANGED, {"isOpen": is_open})
        return is_open

    async def set_shop_open(self, is_open: bool) -> bool:
        self._require_authority("set_shop_open")
        is_open = await self.ledger.set_shop_open(is_open)
        await self.socket.emit(MarketEvent.SHOP_STATE_CHANGED, {"isOpen": is_open})
        return is_open

    async def save_config(self, config: ShopConfig) -> ShopConfig:
        """Replace the whole shop configuration and tell every session."""
        self._require_authority("save_config")
        await self.ledger.replace_config(config)
        await self.socket.emit(MarketEvent.CONFIG_UPDATED, {})
        return config

    async def set_currency_name(self, name: str) -> str:
        self._require_authority("set_currency_name")
        name = await self.ledger.set_currency_name(name)
        await self.socket.emit(MarketEvent.CONFIG_UPDATED, {})
        return name

    async def set_stock(self, item_ref: str, value: int) -> CatalogEntry:
        self._require_authority("set_stock")
        entry = await self.ledger.set_stock(item_ref, value)
        await self.socket.emit(MarketEvent.CONFIG_UPDATED, {})
        return entry

    async def delete_log_entry(self, entry_id: str) -> bool:
        self._require_authority("delete_log_entry")
        return await self.activity_log.delete(entry_id)

    async def clear_activity_log(self) -> int:
        self._require_authority("clear_activity_log")
        return await self.activity_log.clear()

    async def clear_item_reservations(self, item_ref: str) -> int:
        self._require_authority("clear_item_reservations")
        removed = await self.ledger.clear_item_reservations(item_ref)
        if removed:
            await self.socket.emit(MarketEvent.REFRESH_UI, {})
        return removed

    async def refresh_clients(self) -> None:
        """Ask every session to reload its shop state."""
        self._require_authority("refresh_clients")
        await self.socket.emit(MarketEvent.REFRESH_UI, {})
