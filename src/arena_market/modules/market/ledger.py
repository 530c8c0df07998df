"""
Shop Ledger

Purpose
-------
Owns the committed shop state of one session: currency label, shop-open flag,
shop configuration and reservations. Answers the pricing and stock questions
the transaction engine and the catalog view ask, and applies the mutations
only the authoritative session performs.

Design Notes
------------
- The committed state is a single immutable ``LedgerSnapshot``. Mutations
  build a modified copy, stage it in a unit of work and swap the snapshot in
  an ``on_commit`` callback, so a failed write leaves the ledger untouched.
- Mutators accept an optional ``uow`` so the engine can commit a ledger change
  together with an activity log entry.
- Non-authoritative sessions call ``refresh()`` on notifications; the cache is
  replaced, never merged.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Mapping, Optional

from arena_market.core.logging.logger import get_logger
from arena_market.modules.market.constants import DEFAULT_CURRENCY_NAME
from arena_market.modules.market.models import (
    AvailabilityMode,
    CatalogEntry,
    Number,
    Reservation,
    ShopConfig,
)
from arena_market.modules.market.repository import MarketRepository, UnitOfWork
from arena_market.modules.shared.exceptions import NotFoundError, ValidationError

logger = get_logger(__name__)


@dataclass(frozen=True)
class LedgerSnapshot:
    currency_name: str = DEFAULT_CURRENCY_NAME
    shop_open: bool = False
    config: ShopConfig = field(default_factory=ShopConfig)
    reservations: Mapping[str, tuple[Reservation, ...]] = field(default_factory=dict)


class ShopLedger:
    """
    Committed shop state plus the rules that read it.

    Args:
        repository: Typed access to the durable market records
    """

    def __init__(self, repository: MarketRepository) -> None:
        self._repository = repository
        self._snapshot = LedgerSnapshot(currency_name=repository.default_currency)

    # ========================================================================
    # LOADING
    # ========================================================================

    async def refresh(self) -> None:
        """Reload every ledger record from the store and replace the cache."""
        self._snapshot = LedgerSnapshot(
            currency_name=await self._repository.get_currency_name(),
            shop_open=await self._repository.get_shop_open(),
            config=await self._repository.get_shop_config(),
            reservations=await self._repository.get_reservations(),
        )
        logger.debug(
            "Shop ledger refreshed",
            extra={
                "shop_open": self._snapshot.shop_open,
                "configured_items": len(self._snapshot.config.items),
            },
        )

    def _swap(self, **changes: Any) -> None:
        self._snapshot = replace(self._snapshot, **changes)

    # ========================================================================
    # READS
    # ========================================================================

    @property
    def snapshot(self) -> LedgerSnapshot:
        return self._snapshot

    @property
    def currency_name(self) -> str:
        return self._snapshot.currency_name

    @property
    def shop_open(self) -> bool:
        return self._snapshot.shop_open

    @property
    def config(self) -> ShopConfig:
        return self._snapshot.config

    def get_entry(self, item_ref: str) -> Optional[CatalogEntry]:
        return self._snapshot.config.get(item_ref)

    def effective_price(self, item_ref: str, base_price: Optional[Number]) -> Number:
        """
        Price a player pays for ``item_ref``.

        The custom price wins whenever one is set, including 0. Otherwise the
        catalog's base price, otherwise 0. Values are not clamped.
        """
        entry = self.get_entry(item_ref)
        if entry is not None and entry.custom_price is not None:
            return entry.custom_price
        return base_price or 0

    def available_stock(self, item_ref: str) -> Optional[int]:
        """Remaining stock, or ``None`` when the item is unbounded."""
        entry = self.get_entry(item_ref)
        if entry is None or entry.availability is AvailabilityMode.UNLIMITED:
            return None
        if entry.current_stock is not None:
            return entry.current_stock
        if entry.quantity is not None:
            return entry.quantity
        return 0

    def list_reservations(self, item_ref: str) -> list[Reservation]:
        """Reservations for one item, oldest first."""
        return list(self._snapshot.reservations.get(item_ref, ()))

    def all_reservations(self) -> dict[str, list[Reservation]]:
        return {ref: list(items) for ref, items in self._snapshot.reservations.items()}

    def has_reserved(self, item_ref: str, actor_id: str) -> bool:
        return any(
            reservation.actor_id == actor_id
            for reservation in self._snapshot.reservations.get(item_ref, ())
        )

    # ========================================================================
    # STOCK
    # ========================================================================

    async def set_stock(
        self, item_ref: str, value: int, uow: Optional[UnitOfWork] = None
    ) -> CatalogEntry:
        """
        Admin override of the remaining stock of a configured item.

        Raises:
            ValidationError: If value is not a non-negative integer
            NotFoundError: If the item has no catalog entry
        """
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise ValidationError("current_stock", f"must be a non-negative integer, got {value!r}")

        entry = self.get_entry(item_ref)
        if entry is None:
            raise NotFoundError("CatalogEntry", item_ref)

        updated = entry.with_stock(value)
        await self._commit_config(self.config.with_entry(item_ref, updated), uow)

        logger.info(
            "Stock overridden",
            extra={"item_ref": item_ref, "new_stock": value},
        )
        return updated

    async def decrement_stock(
        self, item_ref: str, uow: Optional[UnitOfWork] = None
    ) -> int:
        """
        Reduce the item's stock by exactly one and persist the configuration.

        The caller checks availability first; this method only enforces that
        stock never goes negative (``CatalogEntry`` refuses it).
        """
        entry = self.get_entry(item_ref)
        if entry is None:
            raise NotFoundError("CatalogEntry", item_ref)

        current = entry.current_stock if entry.current_stock is not None else entry.quantity
        new_stock = (current or 0) - 1
        await self._commit_config(
            self.config.with_entry(item_ref, entry.with_stock(new_stock)), uow
        )
        return new_stock

    # ========================================================================
    # CONFIGURATION
    # ========================================================================

    async def replace_config(
        self, config: ShopConfig, uow: Optional[UnitOfWork] = None
    ) -> None:
        """Replace the whole shop configuration (admin save)."""
        await self._commit_config(config, uow)
        logger.info(
            "Shop configuration replaced",
            extra={
                "compendiums": len(config.compendiums),
                "configured_items": len(config.items),
            },
        )

    async def _commit_config(self, config: ShopConfig, uow: Optional[UnitOfWork]) -> None:
        async with self._repository.unit_of_work(uow) as work:
            work.stage_shop_config(config)
            work.on_commit(lambda: self._swap(config=config))

    async def set_shop_open(self, is_open: bool) -> bool:
        is_open = bool(is_open)
        async with self._repository.unit_of_work() as work:
            work.stage_shop_open(is_open)
            work.on_commit(lambda: self._swap(shop_open=is_open))
        logger.info("Shop open state changed", extra={"shop_open": is_open})
        return is_open

    async def toggle_shop(self) -> bool:
        """Flip the shop-open flag and return the new state."""
        return await self.set_shop_open(not self.shop_open)

    async def set_currency_name(self, name: str) -> str:
        name = (name or "").strip()
        if not name:
            raise ValidationError("currency_name", "must not be empty")
        async with self._repository.unit_of_work() as work:
            work.stage_currency_name(name)
            work.on_commit(lambda: self._swap(currency_name=name))
        return name

    # ========================================================================
    # RESERVATIONS
    # ========================================================================

    async def add_reservation(
        self,
        item_ref: str,
        actor_id: str,
        actor_name: str,
        player_name: str,
        uow: Optional[UnitOfWork] = None,
    ) -> bool:
        """
        Record a reservation unless ``actor_id`` already holds one for the item.

        Returns:
            True when a reservation was added, False for a duplicate
        """
        if self.has_reserved(item_ref, actor_id):
            return False

        reservations = dict(self._snapshot.reservations)
        reservations[item_ref] = (
            *reservations.get(item_ref, ()),
            Reservation(actor_id=actor_id, actor_name=actor_name, player_name=player_name),
        )
        await self._commit_reservations(reservations, uow)
        return True

    async def clear_item_reservations(
        self, item_ref: str, uow: Optional[UnitOfWork] = None
    ) -> int:
        """Drop every reservation for one item. Returns how many were removed."""
        removed = len(self._snapshot.reservations.get(item_ref, ()))
        if item_ref not in self._snapshot.reservations:
            return 0

        reservations = dict(self._snapshot.reservations)
        del reservations[item_ref]
        await self._commit_reservations(reservations, uow)

        logger.info(
            "Item reservations cleared",
            extra={"item_ref": item_ref, "removed": removed},
        )
        return removed

    async def _commit_reservations(
        self,
        reservations: Mapping[str, tuple[Reservation, ...]],
        uow: Optional[UnitOfWork],
    ) -> None:
        async with self._repository.unit_of_work(uow) as work:
            work.stage_reservations(reservations)
            work.on_commit(lambda: self._swap(reservations=reservations))
