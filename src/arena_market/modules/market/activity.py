"""
Bounded activity log of purchases and reservations, newest first.
"""

from __future__ import annotations

from typing import Optional

from arena_market.core.logging.logger import get_logger
from arena_market.modules.market.constants import ACTIVITY_LOG_LIMIT
from arena_market.modules.market.models import ActivityLogEntry
from arena_market.modules.market.repository import MarketRepository, UnitOfWork

logger = get_logger(__name__)


class ActivityLog:
    """
    Cached activity log backed by the ``activityLog`` record.

    At most ``limit`` entries are kept; appending past the limit evicts the
    oldest entries.
    """

    def __init__(self, repository: MarketRepository, limit: int = ACTIVITY_LOG_LIMIT) -> None:
        self._repository = repository
        self.limit = limit
        self._entries: tuple[ActivityLogEntry, ...] = ()

    async def refresh(self) -> None:
        self._entries = tuple(await self._repository.get_activity_log())[: self.limit]

    def entries(self, limit: Optional[int] = None) -> list[ActivityLogEntry]:
        if limit is None:
            return list(self._entries)
        return list(self._entries[:limit])

    def __len__(self) -> int:
        return len(self._entries)

    async def append(
        self, entry: ActivityLogEntry, uow: Optional[UnitOfWork] = None
    ) -> ActivityLogEntry:
        entries = (entry, *self._entries)[: self.limit]
        await self._commit(entries, uow)
        logger.debug(
            "Activity recorded",
            extra={"entry_id": entry.id, "type": entry.type.value, "item_ref": entry.item_ref},
        )
        return entry

    async def delete(self, entry_id: str) -> bool:
        entries = tuple(entry for entry in self._entries if entry.id != entry_id)
        if len(entries) == len(self._entries):
            return False
        await self._commit(entries, None)
        logger.info("Activity log entry deleted", extra={"entry_id": entry_id})
        return True

    async def clear(self) -> int:
        removed = len(self._entries)
        await self._commit((), None)
        logger.info("Activity log cleared", extra={"removed": removed})
        return removed

    async def _commit(
        self, entries: tuple[ActivityLogEntry, ...], uow: Optional[UnitOfWork]
    ) -> None:
        def swap() -> None:
            self._entries = entries

        async with self._repository.unit_of_work(uow) as work:
            work.stage_activity_log(entries)
            work.on_commit(swap)
