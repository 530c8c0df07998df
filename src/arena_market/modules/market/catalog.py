"""
Catalog Sources

Purpose
-------
Read-only access to the shared item libraries ("compendiums") the GM picks
shop items from. The engine only needs ``get_item``; the catalog view and the
admin surface also enumerate sources and their item references.

File Format
-----------
``YamlCatalogSource`` reads one pack per YAML file under a directory::

    id: world.arena-items
    label: Arena Items
    items:
      - id: a1b2c3d4e5f6a7b8
        name: Potion of Healing
        type: consumable
        img: icons/potion.webp
        description: Regain 2d4 + 2 hit points.
        price: 50
        system: {rarity: common}

Item references follow ``Compendium.<pack id>.Item.<item id>``. Pack ids may
contain dots.
"""

from __future__ import annotations

import asyncio
import copy
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional, Protocol, Union

import yaml

from arena_market.core.logging.logger import get_logger
from arena_market.modules.market.models import Number, coerce_price

logger = get_logger(__name__)

REF_PREFIX = "Compendium."
REF_ITEM_MARKER = ".Item."


def make_item_ref(pack_id: str, item_id: str) -> str:
    return f"{REF_PREFIX}{pack_id}{REF_ITEM_MARKER}{item_id}"


@dataclass(frozen=True)
class CatalogItem:
    """One item of a catalog pack."""

    ref: str
    item_id: str
    pack_id: str
    name: str
    type: str = "loot"
    img: Optional[str] = None
    description: str = ""
    base_price: Number = 0
    system: Mapping[str, Any] = field(default_factory=dict)

    def make_grant_copy(self) -> dict[str, Any]:
        """
        Structural copy of the item to place in an inventory.

        The copy gets a fresh identity and remembers where it came from.
        """
        return {
            "id": uuid.uuid4().hex[:16],
            "name": self.name,
            "type": self.type,
            "img": self.img,
            "description": self.description,
            "price": self.base_price,
            "system": copy.deepcopy(dict(self.system)),
            "sourceRef": self.ref,
        }


@dataclass(frozen=True)
class CatalogPack:
    id: str
    label: str
    items: tuple[CatalogItem, ...] = ()


class CatalogSource(Protocol):
    """Structural interface of a catalog source."""

    async def get_item(self, item_ref: str) -> Optional[CatalogItem]: ...

    async def list_item_refs(self, source_id: str) -> list[str]: ...

    async def list_sources(self) -> list[CatalogPack]: ...


def _base_price(raw: Mapping[str, Any]) -> Number:
    price = coerce_price(raw.get("price"))
    if price is None:
        system_price = (raw.get("system") or {}).get("price")
        if isinstance(system_price, Mapping):
            system_price = system_price.get("value")
        price = coerce_price(system_price)
    return price or 0


def build_pack(data: Mapping[str, Any], fallback_id: str) -> CatalogPack:
    """Build a pack from its decoded YAML mapping."""
    pack_id = str(data.get("id") or fallback_id)
    items = []
    for raw in data.get("items") or ():
        item_id = str(raw.get("id") or raw.get("_id") or "")
        if not item_id:
            logger.warning(
                "Skipping catalog item without id",
                extra={"pack_id": pack_id, "item_name": raw.get("name")},
            )
            continue
        items.append(
            CatalogItem(
                ref=make_item_ref(pack_id, item_id),
                item_id=item_id,
                pack_id=pack_id,
                name=str(raw.get("name") or item_id),
                type=str(raw.get("type") or "loot"),
                img=raw.get("img"),
                description=str(raw.get("description") or ""),
                base_price=_base_price(raw),
                system=dict(raw.get("system") or {}),
            )
        )
    return CatalogPack(id=pack_id, label=str(data.get("label") or pack_id), items=tuple(items))


class StaticCatalogSource:
    """Catalog source over packs already held in memory."""

    def __init__(self, packs: Iterable[CatalogPack] = ()) -> None:
        self._packs: dict[str, CatalogPack] = {}
        self._items: dict[str, CatalogItem] = {}
        self.replace_packs(packs)

    def replace_packs(self, packs: Iterable[CatalogPack]) -> None:
        self._packs = {pack.id: pack for pack in packs}
        self._items = {
            item.ref: item for pack in self._packs.values() for item in pack.items
        }

    async def get_item(self, item_ref: str) -> Optional[CatalogItem]:
        return self._items.get(item_ref)

    async def list_item_refs(self, source_id: str) -> list[str]:
        pack = self._packs.get(source_id)
        return [item.ref for item in pack.items] if pack else []

    async def list_sources(self) -> list[CatalogPack]:
        return list(self._packs.values())


class YamlCatalogSource(StaticCatalogSource):
    """
    Catalog packs loaded from ``*.yaml`` / ``*.yml`` files under a directory.

    Files are parsed off the event loop. A file that fails to parse is logged
    and skipped; the remaining packs still load.
    """

    def __init__(self, directory: Union[str, Path]) -> None:
        super().__init__()
        self.directory = Path(directory)
        self._loaded = False
        self._load_lock = asyncio.Lock()

    async def load(self) -> int:
        """(Re)load every pack file. Returns the number of packs loaded."""
        async with self._load_lock:
            packs = await asyncio.to_thread(self._read_packs)
            self.replace_packs(packs)
            self._loaded = True

        logger.info(
            "Catalog packs loaded",
            extra={"directory": str(self.directory), "pack_count": len(packs)},
        )
        return len(packs)

    def _read_packs(self) -> list[CatalogPack]:
        if not self.directory.exists():
            logger.warning(
                "Catalog directory not found; catalog is empty",
                extra={"directory": str(self.directory)},
            )
            return []

        files = sorted(self.directory.rglob("*.yaml")) + sorted(self.directory.rglob("*.yml"))
        packs: list[CatalogPack] = []
        for path in files:
            try:
                with path.open("r", encoding="utf-8") as handle:
                    data = yaml.safe_load(handle)
            except (OSError, yaml.YAMLError) as exc:
                logger.warning(
                    "Failed to load catalog pack",
                    extra={"file": str(path), "error": str(exc), "error_type": type(exc).__name__},
                )
                continue

            if not isinstance(data, dict):
                logger.warning(
                    "Ignoring catalog file without a mapping root",
                    extra={"file": str(path), "root_type": type(data).__name__},
                )
                continue

            packs.append(build_pack(data, fallback_id=path.stem))
        return packs

    async def _ensure_loaded(self) -> None:
        if not self._loaded:
            await self.load()

    async def get_item(self, item_ref: str) -> Optional[CatalogItem]:
        await self._ensure_loaded()
        return await super().get_item(item_ref)

    async def list_item_refs(self, source_id: str) -> list[str]:
        await self._ensure_loaded()
        return await super().list_item_refs(source_id)

    async def list_sources(self) -> list[CatalogPack]:
        await self._ensure_loaded()
        return await super().list_sources()
