"""
Actor Directory

Purpose
-------
The characters that shop: their currency balance, their owning player and
their inventory. The transaction engine reads balances and owner names and
writes balances and granted items through this interface only.

Implementations
---------------
- ``MemoryActorDirectory``: process-local actors, for single-process play and
  tests.
- ``SqlActorDirectory``: ``market_actors`` / ``market_actor_items`` tables via
  ``DatabaseService``.
"""

from __future__ import annotations

import copy
import uuid
from dataclasses import dataclass, replace
from typing import Any, Iterable, Optional, Protocol

from sqlalchemy import select

from arena_market.core.database.service import DatabaseService
from arena_market.core.exceptions import StoreError
from arena_market.core.logging.logger import get_logger
from arena_market.database.models import ActorItemRecord, ActorRecord
from arena_market.modules.market.constants import SHOPPER_ACTOR_TYPE
from arena_market.modules.market.models import Number
from arena_market.modules.shared.exceptions import NotFoundError

logger = get_logger(__name__)


@dataclass(frozen=True)
class ActorSnapshot:
    actor_id: str
    name: str
    balance: Number = 0
    actor_type: str = SHOPPER_ACTOR_TYPE
    owner_name: Optional[str] = None


class ActorDirectory(Protocol):
    """Structural interface of the actor/currency collaborator."""

    async def get_actor(self, actor_id: str) -> Optional[ActorSnapshot]: ...

    async def set_balance(self, actor_id: str, amount: Number) -> None: ...

    async def grant_item(self, actor_id: str, item_data: dict[str, Any]) -> str: ...

    async def revoke_item(self, actor_id: str, item_id: str) -> bool: ...

    async def get_owner_name(self, actor_id: str) -> Optional[str]: ...

    async def list_controllable_actors(self, user_name: str) -> list[ActorSnapshot]: ...


def _item_id(item_data: dict[str, Any]) -> str:
    return str(item_data.get("id") or uuid.uuid4().hex[:16])


class MemoryActorDirectory:
    """Actors held in process memory."""

    def __init__(self, actors: Iterable[ActorSnapshot] = ()) -> None:
        self._actors: dict[str, ActorSnapshot] = {actor.actor_id: actor for actor in actors}
        self.inventories: dict[str, list[dict[str, Any]]] = {
            actor_id: [] for actor_id in self._actors
        }

    def add_actor(self, actor: ActorSnapshot) -> ActorSnapshot:
        self._actors[actor.actor_id] = actor
        self.inventories.setdefault(actor.actor_id, [])
        return actor

    def _require(self, actor_id: str) -> ActorSnapshot:
        actor = self._actors.get(actor_id)
        if actor is None:
            raise NotFoundError("Actor", actor_id)
        return actor

    async def get_actor(self, actor_id: str) -> Optional[ActorSnapshot]:
        return self._actors.get(actor_id)

    async def set_balance(self, actor_id: str, amount: Number) -> None:
        self._actors[actor_id] = replace(self._require(actor_id), balance=amount)

    async def grant_item(self, actor_id: str, item_data: dict[str, Any]) -> str:
        self._require(actor_id)
        granted = copy.deepcopy(item_data)
        granted["id"] = _item_id(granted)
        self.inventories[actor_id].append(granted)
        return granted["id"]

    async def revoke_item(self, actor_id: str, item_id: str) -> bool:
        inventory = self.inventories.get(actor_id, [])
        kept = [item for item in inventory if item.get("id") != item_id]
        self.inventories[actor_id] = kept
        return len(kept) < len(inventory)

    async def get_owner_name(self, actor_id: str) -> Optional[str]:
        actor = self._actors.get(actor_id)
        return actor.owner_name if actor else None

    async def list_controllable_actors(self, user_name: str) -> list[ActorSnapshot]:
        return [
            actor
            for actor in self._actors.values()
            if actor.actor_type == SHOPPER_ACTOR_TYPE and actor.owner_name == user_name
        ]


def _to_snapshot(record: ActorRecord) -> ActorSnapshot:
    balance = record.balance or 0
    return ActorSnapshot(
        actor_id=record.actor_id,
        name=record.name,
        balance=int(balance) if float(balance).is_integer() else balance,
        actor_type=record.actor_type,
        owner_name=record.owner_name,
    )


class SqlActorDirectory:
    """Actor directory over the ``market_actors`` tables."""

    async def get_actor(self, actor_id: str) -> Optional[ActorSnapshot]:
        try:
            async with DatabaseService.get_session() as session:
                record = await session.get(ActorRecord, actor_id)
                return _to_snapshot(record) if record else None
        except Exception as exc:
            raise StoreError("get_actor", exc, keys=[actor_id]) from exc

    async def set_balance(self, actor_id: str, amount: Number) -> None:
        try:
            async with DatabaseService.get_transaction() as session:
                record = await session.get(ActorRecord, actor_id, with_for_update=True)
                if record is None:
                    raise NotFoundError("Actor", actor_id)
                record.balance = float(amount)
        except NotFoundError:
            raise
        except Exception as exc:
            raise StoreError("set_balance", exc, keys=[actor_id]) from exc

        logger.debug(
            "Actor balance updated",
            extra={"actor_id": actor_id, "balance": amount},
        )

    async def grant_item(self, actor_id: str, item_data: dict[str, Any]) -> str:
        item_id = _item_id(item_data)
        try:
            async with DatabaseService.get_transaction() as session:
                if await session.get(ActorRecord, actor_id) is None:
                    raise NotFoundError("Actor", actor_id)
                session.add(
                    ActorItemRecord(
                        item_id=item_id,
                        actor_id=actor_id,
                        name=str(item_data.get("name") or item_id),
                        source_ref=item_data.get("sourceRef"),
                        data={**item_data, "id": item_id},
                    )
                )
        except NotFoundError:
            raise
        except Exception as exc:
            raise StoreError("grant_item", exc, keys=[actor_id]) from exc

        logger.debug(
            "Item granted",
            extra={"actor_id": actor_id, "granted_item_id": item_id},
        )
        return item_id

    async def revoke_item(self, actor_id: str, item_id: str) -> bool:
        """Remove a granted item. Returns False when the actor never held it."""
        try:
            async with DatabaseService.get_transaction() as session:
                record = await session.get(ActorItemRecord, item_id, with_for_update=True)
                if record is None or record.actor_id != actor_id:
                    return False
                await session.delete(record)
        except Exception as exc:
            raise StoreError("revoke_item", exc, keys=[actor_id, item_id]) from exc

        logger.debug(
            "Item revoked",
            extra={"actor_id": actor_id, "revoked_item_id": item_id},
        )
        return True

    async def get_owner_name(self, actor_id: str) -> Optional[str]:
        actor = await self.get_actor(actor_id)
        return actor.owner_name if actor else None

    async def list_controllable_actors(self, user_name: str) -> list[ActorSnapshot]:
        try:
            async with DatabaseService.get_session() as session:
                result = await session.execute(
                    select(ActorRecord)
                    .where(
                        ActorRecord.owner_name == user_name,
                        ActorRecord.actor_type == SHOPPER_ACTOR_TYPE,
                    )
                    .order_by(ActorRecord.name)
                )
                return [_to_snapshot(record) for record in result.scalars()]
        except Exception as exc:
            raise StoreError("list_controllable_actors", exc, keys=[user_name]) from exc

    async def list_item_ids(self, actor_id: str) -> list[str]:
        async with DatabaseService.get_session() as session:
            result = await session.execute(
                select(ActorItemRecord.item_id).where(ActorItemRecord.actor_id == actor_id)
            )
            return list(result.scalars())
