"""
Settings Store for Arena Market

Purpose
-------
Durable key/value records scoped to one module namespace. Each record
(``currencyName``, ``shopOpen``, ``shopConfig``, ``activityLog``,
``reservations``) is read and written whole; there is no partial update.

Implementations
---------------
- ``MemorySettingsStore``: process-local dict, used for single-process play
  and in tests. Values are copied on the way in and out so callers never share
  mutable state with the store.
- ``SqlSettingsStore``: one ``MarketSetting`` row per record via
  ``DatabaseService``. ``set_many`` writes every record in a single
  transaction.

Errors
------
Backend failures surface as ``StoreError`` (retryable infrastructure error).
"""

from __future__ import annotations

import copy
import time
from typing import Any, Mapping, Optional, Protocol

from sqlalchemy import select

from arena_market.core.database.service import DatabaseService
from arena_market.core.exceptions import StoreError
from arena_market.core.logging.logger import get_logger
from arena_market.database.models import MarketSetting

logger = get_logger(__name__)


class SettingsStore(Protocol):
    """Structural interface for the durable record store."""

    async def get(self, key: str, default: Any = None) -> Any: ...

    async def set(self, key: str, value: Any) -> None: ...

    async def set_many(self, values: Mapping[str, Any]) -> None: ...


class MemorySettingsStore:
    """
    In-memory store.

    ``set_many`` applies all values in one dict update, so readers on the same
    loop never observe half of a multi-record write.
    """

    def __init__(self, initial: Optional[Mapping[str, Any]] = None) -> None:
        self._records: dict[str, Any] = copy.deepcopy(dict(initial or {}))
        self.write_count = 0

    async def get(self, key: str, default: Any = None) -> Any:
        if key not in self._records:
            return copy.deepcopy(default)
        return copy.deepcopy(self._records[key])

    async def set(self, key: str, value: Any) -> None:
        await self.set_many({key: value})

    async def set_many(self, values: Mapping[str, Any]) -> None:
        if not values:
            return
        self._records.update(copy.deepcopy(dict(values)))
        self.write_count += 1

    def snapshot(self) -> dict[str, Any]:
        return copy.deepcopy(self._records)


class SqlSettingsStore:
    """
    Settings store backed by the ``market_settings`` table.

    Args:
        module_id: Namespace the records belong to
        modified_by: Session id recorded on every write
    """

    def __init__(self, module_id: str, modified_by: Optional[str] = None) -> None:
        self.module_id = module_id
        self.modified_by = modified_by

    async def get(self, key: str, default: Any = None) -> Any:
        try:
            async with DatabaseService.get_session() as session:
                result = await session.execute(
                    select(MarketSetting.setting_value).where(
                        MarketSetting.module_id == self.module_id,
                        MarketSetting.setting_key == key,
                    )
                )
                row = result.first()
        except Exception as exc:
            logger.error(
                "Failed to read market setting",
                extra={"setting_key": key, "error": str(exc), "error_type": type(exc).__name__},
                exc_info=True,
            )
            raise StoreError("get", exc, keys=[key]) from exc

        if row is None or row[0] is None:
            return copy.deepcopy(default)
        return row[0]

    async def set(self, key: str, value: Any) -> None:
        await self.set_many({key: value})

    async def set_many(self, values: Mapping[str, Any]) -> None:
        if not values:
            return

        keys = list(values)
        start_time = time.monotonic()

        try:
            async with DatabaseService.get_transaction() as session:
                result = await session.execute(
                    select(MarketSetting)
                    .where(
                        MarketSetting.module_id == self.module_id,
                        MarketSetting.setting_key.in_(keys),
                    )
                    .with_for_update()
                )
                existing = {row.setting_key: row for row in result.scalars()}

                for key, value in values.items():
                    record = existing.get(key)
                    if record is None:
                        session.add(
                            MarketSetting(
                                module_id=self.module_id,
                                setting_key=key,
                                setting_value=value,
                                modified_by=self.modified_by,
                            )
                        )
                    else:
                        record.setting_value = value
                        record.modified_by = self.modified_by
        except Exception as exc:
            logger.error(
                "Failed to write market settings",
                extra={"keys": keys, "error": str(exc), "error_type": type(exc).__name__},
                exc_info=True,
            )
            raise StoreError("set_many", exc, keys=keys) from exc

        logger.debug(
            "Market settings written",
            extra={
                "keys": keys,
                "latency_ms": round((time.monotonic() - start_time) * 1000, 2),
            },
        )
