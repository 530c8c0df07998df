"""
Catalog read model.

Builds what a shop screen shows from a session's cached state: one category
per selected catalog pack, configured items only, with price, stock and the
flags that decide whether the buy or reserve control is enabled.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Optional

from arena_market.modules.market.actors import ActorSnapshot
from arena_market.modules.market.constants import RECENT_ACTIVITY_LIMIT
from arena_market.modules.market.models import (
    ActivityLogEntry,
    AvailabilityMode,
    Number,
    Reservation,
)

if TYPE_CHECKING:
    from arena_market.modules.market.session import MarketSession


@dataclass(frozen=True)
class CatalogItemView:
    ref: str
    name: str
    img: Optional[str]
    type: str
    description: str
    price: Number
    availability: AvailabilityMode
    stock: Optional[int]
    can_afford: bool
    sold_out: bool
    has_reserved: bool
    disabled: bool


@dataclass(frozen=True)
class CatalogCategoryView:
    id: str
    label: str
    items: tuple[CatalogItemView, ...]


@dataclass(frozen=True)
class CatalogView:
    shop_open: bool
    currency_name: str
    actors: tuple[ActorSnapshot, ...]
    selected_actor: Optional[ActorSnapshot]
    balance: Number
    categories: tuple[CatalogCategoryView, ...]
    recent_activity: tuple[ActivityLogEntry, ...] = ()
    reservations: dict[str, list[Reservation]] = field(default_factory=dict)

    @property
    def has_categories(self) -> bool:
        return bool(self.categories)


async def build_catalog_view(
    session: MarketSession, actor_id: Optional[str] = None
) -> CatalogView:
    """
    Assemble the shop screen for ``actor_id``.

    Without an actor id the first character the session's user controls is
    selected. The authoritative session also gets the 50 newest activity
    entries and every reservation.
    """
    ledger = session.ledger
    actors = await session.list_actors()
    if actor_id is None and actors:
        actor_id = actors[0].actor_id

    selected = await session.actors.get_actor(actor_id) if actor_id else None
    balance = selected.balance if selected else 0
    shop_open = ledger.shop_open

    packs = {pack.id: pack for pack in await session.catalog.list_sources()}
    categories = []
    for pack_id in ledger.config.compendiums:
        pack = packs.get(pack_id)
        if pack is None:
            continue

        items = []
        for item in pack.items:
            entry = ledger.get_entry(item.ref)
            if entry is None:
                continue

            price = ledger.effective_price(item.ref, item.base_price)
            stock = ledger.available_stock(item.ref)
            can_afford = balance >= price
            sold_out = entry.is_limited and (stock or 0) <= 0
            has_reserved = bool(actor_id) and ledger.has_reserved(item.ref, actor_id)

            items.append(
                CatalogItemView(
                    ref=item.ref,
                    name=item.name,
                    img=item.img,
                    type=item.type,
                    description=item.description,
                    price=price,
                    availability=entry.availability,
                    stock=stock,
                    can_afford=can_afford,
                    sold_out=sold_out,
                    has_reserved=has_reserved,
                    disabled=(
                        not shop_open
                        or sold_out
                        or (not can_afford and not entry.is_reservable)
                        or has_reserved
                    ),
                )
            )

        if items:
            categories.append(CatalogCategoryView(id=pack.id, label=pack.label, items=tuple(items)))

    recent: tuple[ActivityLogEntry, ...] = ()
    reservations: dict[str, list[Reservation]] = {}
    if session.authoritative:
        recent = tuple(session.activity_log.entries(RECENT_ACTIVITY_LIMIT))
        reservations = ledger.all_reservations()

    return CatalogView(
        shop_open=shop_open,
        currency_name=ledger.currency_name,
        actors=tuple(actors),
        selected_actor=selected,
        balance=balance,
        categories=tuple(categories),
        recent_activity=recent,
        reservations=reservations,
    )
