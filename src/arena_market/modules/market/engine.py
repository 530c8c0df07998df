"""
Transaction Engine

Purpose
-------
The only component allowed to move currency, stock and inventory together.
Runs the purchase and reservation protocols for the authoritative session.

Responsibilities
----------------
- Check shop state, actor, catalog item and catalog entry before any mutation
- Enforce stock availability and affordability
- Deduct currency, grant a copy of the item, decrement stock, log activity
- Refund the deduction and take back the item when a later step fails
- Return exactly one ``TransactionResult`` per call

Non-Responsibilities
--------------------
- Forwarding requests from other sessions (``MarketSession`` does that)
- Broadcasting outcomes (``MarketSocket`` does that)

Concurrency
-----------
Both protocols run under one ``asyncio.Lock``. Waiters are served in FIFO
order, so no two transactions interleave across an ``await``, and the
check-then-act sequence on stock and balance holds for the whole protocol.

Atomicity
---------
Stock and activity log (purchase) or reservation and activity log
(reservation) are committed in one unit of work. Currency and inventory live
in the actor directory and are written before that commit; a failed grant is
compensated by restoring the original balance.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Mapping, Optional

from arena_market.core.logging.logger import LogContext, get_logger
from arena_market.modules.market.constants import (
    FAILURE_MESSAGES,
    PURCHASE_SUCCESS_MESSAGE,
    RESERVATION_SUCCESS_MESSAGE,
    UNKNOWN_PLAYER,
    FailureReason,
)
from arena_market.modules.market.models import ActivityLogEntry, AvailabilityMode, Number
from arena_market.modules.shared.base_service import BaseService

if TYPE_CHECKING:
    from logging import Logger

    from arena_market.core.event.bus import EventBus
    from arena_market.modules.market.activity import ActivityLog
    from arena_market.modules.market.actors import ActorDirectory
    from arena_market.modules.market.catalog import CatalogSource
    from arena_market.modules.market.ledger import ShopLedger
    from arena_market.modules.market.repository import MarketRepository

TRANSACTION_COMPLETED_EVENT = "market.transaction.completed"
TRANSACTION_FAILED_EVENT = "market.transaction.failed"


@dataclass(frozen=True)
class TransactionResult:
    """Terminal outcome of one purchase or reservation."""

    success: bool
    message: str
    reason: Optional[FailureReason] = None
    item_ref: Optional[str] = None
    item_name: Optional[str] = None
    price: Optional[Number] = None
    currency: Optional[str] = None
    new_stock: Optional[int] = None
    actor_name: Optional[str] = None
    player_name: Optional[str] = None

    @classmethod
    def failure(
        cls,
        reason: FailureReason,
        *,
        item_ref: Optional[str] = None,
        currency: Optional[str] = None,
    ) -> "TransactionResult":
        message = FAILURE_MESSAGES[reason].format(currency=currency or "")
        return cls(
            success=False, message=message, reason=reason, item_ref=item_ref, currency=currency
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "message": self.message,
            "reason": self.reason.value if self.reason else None,
            "itemUuid": self.item_ref,
            "itemName": self.item_name,
            "price": self.price,
            "currency": self.currency,
            "newStock": self.new_stock,
            "actorName": self.actor_name,
            "playerName": self.player_name,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TransactionResult":
        reason = data.get("reason")
        return cls(
            success=bool(data.get("success")),
            message=str(data.get("message") or ""),
            reason=FailureReason(reason) if reason else None,
            item_ref=data.get("itemUuid"),
            item_name=data.get("itemName"),
            price=data.get("price"),
            currency=data.get("currency"),
            new_stock=data.get("newStock"),
            actor_name=data.get("actorName"),
            player_name=data.get("playerName"),
        )


class TransactionEngine(BaseService):
    """
    Purchase and reservation protocols over the ledger and the activity log.

    Args:
        ledger: Committed shop state (config, stock, reservations)
        activity_log: Bounded purchase/reservation history
        repository: Provides the unit of work shared by ledger and log
        catalog: Resolves item references
        actors: Reads and writes balances and inventories
        event_bus: Local bus for transaction notifications
        logger: Structured logger
    """

    def __init__(
        self,
        ledger: ShopLedger,
        activity_log: ActivityLog,
        repository: MarketRepository,
        catalog: CatalogSource,
        actors: ActorDirectory,
        event_bus: EventBus,
        logger: Logger,
    ) -> None:
        super().__init__(event_bus, logger)
        self.ledger = ledger
        self.activity_log = activity_log
        self._repository = repository
        self._catalog = catalog
        self._actors = actors
        self._lock = asyncio.Lock()

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    # ========================================================================
    # PURCHASE
    # ========================================================================

    async def purchase(self, actor_id: str, item_ref: str) -> TransactionResult:
        async with self._lock:
            async with LogContext(actor_id=actor_id, item_ref=item_ref, operation="purchase"):
                result = await self._purchase(actor_id, item_ref)
                await self._finish("purchase", actor_id, result)
                return result

    async def _purchase(self, actor_id: str, item_ref: str) -> TransactionResult:
        currency = self.ledger.currency_name

        if not self.ledger.shop_open:
            return TransactionResult.failure(FailureReason.SHOP_CLOSED, item_ref=item_ref)

        actor = await self._actors.get_actor(actor_id)
        if actor is None:
            return TransactionResult.failure(FailureReason.ACTOR_NOT_FOUND, item_ref=item_ref)

        item = await self._catalog.get_item(item_ref)
        if item is None:
            return TransactionResult.failure(FailureReason.ITEM_NOT_FOUND, item_ref=item_ref)

        entry = self.ledger.get_entry(item_ref)
        if entry is None:
            return TransactionResult.failure(FailureReason.ITEM_NOT_CONFIGURED, item_ref=item_ref)

        if entry.availability is AvailabilityMode.LIMITED:
            stock = self.ledger.available_stock(item_ref)
            if stock is not None and stock <= 0:
                return TransactionResult.failure(FailureReason.SOLD_OUT, item_ref=item_ref)

        price = self.ledger.effective_price(item_ref, item.base_price)
        if actor.balance < price:
            return TransactionResult.failure(
                FailureReason.INSUFFICIENT_FUNDS, item_ref=item_ref, currency=currency
            )

        player_name = await self._player_name(actor_id)

        # Mutations start here.
        await self._actors.set_balance(actor_id, actor.balance - price)

        try:
            granted_id = await self._actors.grant_item(actor_id, item.make_grant_copy())
        except Exception as exc:
            await self._refund("grant_item", actor_id, actor.balance, price, exc)
            return TransactionResult.failure(
                FailureReason.GRANT_FAILED, item_ref=item_ref, currency=currency
            )

        new_stock: Optional[int] = None
        try:
            async with self._repository.unit_of_work() as uow:
                if entry.availability is AvailabilityMode.LIMITED:
                    new_stock = await self.ledger.decrement_stock(item_ref, uow)
                await self.activity_log.append(
                    ActivityLogEntry.purchase(
                        actor_id=actor.actor_id,
                        actor_name=actor.name,
                        player_name=player_name,
                        item_ref=item_ref,
                        item_name=item.name,
                        price=price,
                        currency=currency,
                    ),
                    uow,
                )
        except Exception as exc:
            await self._refund("record_purchase", actor_id, actor.balance, price, exc, granted_id)
            return TransactionResult.failure(
                FailureReason.RECORD_FAILED, item_ref=item_ref, currency=currency
            )

        self.log.info(
            "Purchase completed",
            extra={
                "actor_id": actor_id,
                "item_ref": item_ref,
                "price": price,
                "new_stock": new_stock,
                "granted_item_id": granted_id,
            },
        )
        return TransactionResult(
            success=True,
            message=PURCHASE_SUCCESS_MESSAGE.format(item=item.name, price=price, currency=currency),
            item_ref=item_ref,
            item_name=item.name,
            price=price,
            currency=currency,
            new_stock=new_stock,
            actor_name=actor.name,
            player_name=player_name,
        )

    async def _refund(
        self,
        operation: str,
        actor_id: str,
        original_balance: Number,
        price: Number,
        error: Exception,
        granted_id: Optional[str] = None,
    ) -> None:
        """Undo a purchase that failed at ``operation``: take back the item, restore the balance."""
        self.log_error(operation, error, actor_id=actor_id, price=price)
        try:
            if granted_id is not None:
                await self._actors.revoke_item(actor_id, granted_id)
            await self._actors.set_balance(actor_id, original_balance)
        except Exception as refund_error:
            self.log.critical(
                f"Refund failed after {operation} failure; purchase left half applied",
                extra={
                    "actor_id": actor_id,
                    "price": price,
                    "granted_item_id": granted_id,
                    "error": str(refund_error),
                    "error_type": type(refund_error).__name__,
                },
                exc_info=True,
            )
            raise
        self.log.warning(
            f"Purchase refunded after {operation} failure",
            extra={"actor_id": actor_id, "price": price, "granted_item_id": granted_id},
        )

    # ========================================================================
    # RESERVATION
    # ========================================================================

    async def reserve(self, actor_id: str, item_ref: str) -> TransactionResult:
        async with self._lock:
            async with LogContext(actor_id=actor_id, item_ref=item_ref, operation="reserve"):
                result = await self._reserve(actor_id, item_ref)
                await self._finish("reserve", actor_id, result)
                return result

    async def _reserve(self, actor_id: str, item_ref: str) -> TransactionResult:
        if not self.ledger.shop_open:
            return TransactionResult.failure(FailureReason.SHOP_CLOSED, item_ref=item_ref)

        actor = await self._actors.get_actor(actor_id)
        if actor is None:
            return TransactionResult.failure(FailureReason.ACTOR_NOT_FOUND, item_ref=item_ref)

        item = await self._catalog.get_item(item_ref)
        if item is None:
            return TransactionResult.failure(FailureReason.ITEM_NOT_FOUND, item_ref=item_ref)

        entry = self.ledger.get_entry(item_ref)
        if entry is None:
            return TransactionResult.failure(FailureReason.ITEM_NOT_CONFIGURED, item_ref=item_ref)

        if entry.availability is not AvailabilityMode.RESERVATION:
            return TransactionResult.failure(FailureReason.NOT_RESERVABLE, item_ref=item_ref)

        if self.ledger.has_reserved(item_ref, actor_id):
            return TransactionResult.failure(FailureReason.ALREADY_RESERVED, item_ref=item_ref)

        player_name = await self._player_name(actor_id)
        async with self._repository.unit_of_work() as uow:
            await self.ledger.add_reservation(
                item_ref, actor.actor_id, actor.name, player_name, uow
            )
            await self.activity_log.append(
                ActivityLogEntry.reservation(
                    actor_id=actor.actor_id,
                    actor_name=actor.name,
                    player_name=player_name,
                    item_ref=item_ref,
                    item_name=item.name,
                ),
                uow,
            )

        self.log.info(
            "Reservation recorded",
            extra={"actor_id": actor_id, "item_ref": item_ref, "player_name": player_name},
        )
        return TransactionResult(
            success=True,
            message=RESERVATION_SUCCESS_MESSAGE.format(item=item.name),
            item_ref=item_ref,
            item_name=item.name,
            actor_name=actor.name,
            player_name=player_name,
        )

    # ========================================================================
    # HELPERS
    # ========================================================================

    async def _player_name(self, actor_id: str) -> str:
        return await self._actors.get_owner_name(actor_id) or UNKNOWN_PLAYER

    async def _finish(self, operation: str, actor_id: str, result: TransactionResult) -> None:
        if not result.success:
            self.log.info(
                f"{operation.capitalize()} refused: {result.reason.value if result.reason else ''}",
                extra={
                    "operation": operation,
                    "actor_id": actor_id,
                    "item_ref": result.item_ref,
                    "reason": result.reason.value if result.reason else None,
                },
            )
        await self.emit_event(
            TRANSACTION_COMPLETED_EVENT if result.success else TRANSACTION_FAILED_EVENT,
            {"operation": operation, "actor_id": actor_id, "result": result.to_dict()},
        )
