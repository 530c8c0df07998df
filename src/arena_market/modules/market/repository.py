"""
Market Repository

Purpose
-------
Typed access to the five durable market records on top of a
``SettingsStore``, plus a unit of work that commits several records at once.

Responsibilities
----------------
- Decode stored JSON into model objects, falling back to record defaults
- Encode model objects back into their stored shapes
- Stage multi-record writes and commit them atomically

Non-Responsibilities
--------------------
- No business rules (ledger and engine own those)
- No in-memory caching (the ledger keeps the committed snapshot)

Usage
-----
    async with repository.unit_of_work() as uow:
        uow.stage_shop_config(new_config)
        uow.stage_activity_log(new_entries)
        uow.on_commit(lambda: ledger_swap(new_config))
    # both records committed together; callbacks ran
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable, Mapping, Optional, Sequence

from arena_market.core.logging.logger import get_logger
from arena_market.modules.market.constants import (
    ACTIVITY_LOG_KEY,
    CURRENCY_NAME_KEY,
    DEFAULT_CURRENCY_NAME,
    RESERVATIONS_KEY,
    SHOP_CONFIG_KEY,
    SHOP_OPEN_KEY,
)
from arena_market.modules.market.models import (
    ActivityLogEntry,
    Reservation,
    ReservationMap,
    ShopConfig,
    reservations_from_dict,
    reservations_to_dict,
)
from arena_market.modules.market.store import SettingsStore

logger = get_logger(__name__)

CommitCallback = Callable[[], None]


class UnitOfWork:
    """
    Staged writes for one atomic commit.

    Staging the same record twice keeps the last value. Callbacks registered
    with ``on_commit`` run in registration order only after the store accepted
    every staged record.
    """

    def __init__(self, store: SettingsStore) -> None:
        self._store = store
        self._staged: dict[str, Any] = {}
        self._callbacks: list[CommitCallback] = []
        self.committed = False

    @property
    def staged_keys(self) -> list[str]:
        return list(self._staged)

    def stage(self, key: str, value: Any) -> None:
        if self.committed:
            raise RuntimeError("Unit of work already committed")
        self._staged[key] = value

    def stage_shop_config(self, config: ShopConfig) -> None:
        self.stage(SHOP_CONFIG_KEY, config.to_dict())

    def stage_reservations(self, reservations: Mapping[str, Sequence[Reservation]]) -> None:
        self.stage(RESERVATIONS_KEY, reservations_to_dict(reservations))

    def stage_activity_log(self, entries: Sequence[ActivityLogEntry]) -> None:
        self.stage(ACTIVITY_LOG_KEY, [entry.to_dict() for entry in entries])

    def stage_shop_open(self, is_open: bool) -> None:
        self.stage(SHOP_OPEN_KEY, bool(is_open))

    def stage_currency_name(self, name: str) -> None:
        self.stage(CURRENCY_NAME_KEY, name)

    def on_commit(self, callback: CommitCallback) -> None:
        self._callbacks.append(callback)

    async def commit(self) -> None:
        if self.committed:
            return
        await self._store.set_many(self._staged)
        self.committed = True

        logger.debug("Unit of work committed", extra={"keys": self.staged_keys})
        for callback in self._callbacks:
            callback()


class MarketRepository:
    """Typed reader/writer for the market records of one module namespace."""

    def __init__(
        self,
        store: SettingsStore,
        default_currency: str = DEFAULT_CURRENCY_NAME,
    ) -> None:
        self.store = store
        self.default_currency = default_currency

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_currency_name(self) -> str:
        value = await self.store.get(CURRENCY_NAME_KEY)
        return str(value) if value else self.default_currency

    async def get_shop_open(self) -> bool:
        return bool(await self.store.get(SHOP_OPEN_KEY, False))

    async def get_shop_config(self) -> ShopConfig:
        return ShopConfig.from_dict(await self.store.get(SHOP_CONFIG_KEY, {}))

    async def get_reservations(self) -> ReservationMap:
        return reservations_from_dict(await self.store.get(RESERVATIONS_KEY, {}))

    async def get_activity_log(self) -> list[ActivityLogEntry]:
        raw = await self.store.get(ACTIVITY_LOG_KEY, [])
        return [ActivityLogEntry.from_dict(item) for item in raw or []]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def unit_of_work(
        self, uow: Optional[UnitOfWork] = None
    ) -> AsyncIterator[UnitOfWork]:
        """
        Open a unit of work, or join ``uow`` when one is already open.

        A joined unit of work is committed by its owner, not here. An owned
        one commits when the block exits cleanly and is discarded when it
        raises.
        """
        if uow is not None:
            yield uow
            return

        owned = UnitOfWork(self.store)
        yield owned
        await owned.commit()
