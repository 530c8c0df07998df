"""
Market data model.

Value objects for shop configuration, reservations and the activity log. All of
them are immutable; the ledger and the activity log replace whole values rather
than mutating them in place.

Serialized shapes keep the camelCase keys of the durable records
(``customPrice``, ``currentStock``, ``actorId``, ``itemUuid`` ...) so existing
stored state loads unchanged.
"""

from __future__ import annotations

import math
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping, Optional, Union

from arena_market.modules.shared.exceptions import ValidationError

Number = Union[int, float]


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def new_record_id() -> str:
    return uuid.uuid4().hex[:16]


def coerce_price(value: Any) -> Optional[Number]:
    """
    Interpret a stored price override.

    None, empty strings and non-numeric values mean "no override". Integral
    values come back as ``int``.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return int(number) if number.is_integer() else number


def _optional_int(value: Any, field_name: str) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(field_name, f"expected an integer, got {value!r}") from exc


class AvailabilityMode(str, Enum):
    UNLIMITED = "unlimited"
    LIMITED = "limited"
    RESERVATION = "reservation"

    @classmethod
    def parse(cls, value: Any) -> "AvailabilityMode":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value or cls.UNLIMITED.value).lower())
        except ValueError as exc:
            raise ValidationError("availability", f"unknown mode {value!r}") from exc


@dataclass(frozen=True, slots=True)
class CatalogEntry:
    """
    The GM's rule for one catalog item.

    ``quantity`` is the initial stock set by the GM and ``current_stock`` what
    is left. Neither may be negative. For Unlimited entries both are ignored.
    """

    availability: AvailabilityMode = AvailabilityMode.UNLIMITED
    quantity: Optional[int] = None
    current_stock: Optional[int] = None
    custom_price: Optional[Number] = None

    def __post_init__(self) -> None:
        if self.quantity is not None and self.quantity < 0:
            raise ValidationError("quantity", f"must be >= 0, got {self.quantity}")
        if self.current_stock is not None and self.current_stock < 0:
            raise ValidationError(
                "current_stock", f"must be >= 0, got {self.current_stock}"
            )

    @classmethod
    def create(
        cls,
        availability: Union[AvailabilityMode, str] = AvailabilityMode.UNLIMITED,
        quantity: Optional[int] = None,
        custom_price: Any = None,
        current_stock: Optional[int] = None,
    ) -> "CatalogEntry":
        """
        Build an entry the way the admin screen does: quantity defaults to 1
        and a fresh entry starts with its full quantity in stock.
        """
        quantity = 1 if quantity is None else quantity
        return cls(
            availability=AvailabilityMode.parse(availability),
            quantity=quantity,
            current_stock=quantity if current_stock is None else current_stock,
            custom_price=coerce_price(custom_price),
        )

    @property
    def is_limited(self) -> bool:
        return self.availability is AvailabilityMode.LIMITED

    @property
    def is_reservable(self) -> bool:
        return self.availability is AvailabilityMode.RESERVATION

    def with_stock(self, stock: int) -> "CatalogEntry":
        return replace(self, current_stock=stock)

    def to_dict(self) -> dict[str, Any]:
        return {
            "availability": self.availability.value,
            "quantity": self.quantity,
            "customPrice": self.custom_price,
            "currentStock": self.current_stock,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CatalogEntry":
        return cls(
            availability=AvailabilityMode.parse(data.get("availability")),
            quantity=_optional_int(data.get("quantity"), "quantity"),
            current_stock=_optional_int(data.get("currentStock"), "current_stock"),
            custom_price=coerce_price(data.get("customPrice")),
        )


@dataclass(frozen=True, slots=True)
class ShopConfig:
    """
    Aggregate root of the shop: selected catalog sources and per-item entries.

    Items without an entry are invisible to players.
    """

    compendiums: tuple[str, ...] = ()
    items: Mapping[str, CatalogEntry] = field(default_factory=dict)

    def get(self, item_ref: str) -> Optional[CatalogEntry]:
        return self.items.get(item_ref)

    def with_entry(self, item_ref: str, entry: CatalogEntry) -> "ShopConfig":
        items = dict(self.items)
        items[item_ref] = entry
        return ShopConfig(compendiums=self.compendiums, items=items)

    def to_dict(self) -> dict[str, Any]:
        return {
            "compendiums": list(self.compendiums),
            "items": {ref: entry.to_dict() for ref, entry in self.items.items()},
        }

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "ShopConfig":
        if not data:
            return cls()
        return cls(
            compendiums=tuple(data.get("compendiums") or ()),
            items={
                ref: CatalogEntry.from_dict(entry)
                for ref, entry in (data.get("items") or {}).items()
            },
        )


@dataclass(frozen=True, slots=True)
class Reservation:
    """A pending claim on a reservation-only item. Never expires."""

    actor_id: str
    actor_name: str
    player_name: str
    timestamp: str = field(default_factory=utc_now_iso)

    def to_dict(self) -> dict[str, Any]:
        return {
            "actorId": self.actor_id,
            "actorName": self.actor_name,
            "playerName": self.player_name,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Reservation":
        return cls(
            actor_id=str(data["actorId"]),
            actor_name=data.get("actorName") or "",
            player_name=data.get("playerName") or "",
            timestamp=str(data.get("timestamp") or utc_now_iso()),
        )


ReservationMap = dict[str, tuple[Reservation, ...]]


def reservations_to_dict(reservations: Mapping[str, tuple[Reservation, ...]]) -> dict[str, Any]:
    return {
        ref: [reservation.to_dict() for reservation in items]
        for ref, items in reservations.items()
    }


def reservations_from_dict(data: Optional[Mapping[str, Any]]) -> ReservationMap:
    return {
        ref: tuple(Reservation.from_dict(item) for item in items or ())
        for ref, items in (data or {}).items()
    }


class ActivityType(str, Enum):
    PURCHASE = "purchase"
    RESERVATION = "reservation"


@dataclass(frozen=True, slots=True)
class ActivityLogEntry:
    """One purchase or reservation, as recorded by the authoritative session."""

    type: ActivityType
    actor_id: str
    actor_name: str
    player_name: str
    item_ref: str
    item_name: str
    price: Optional[Number] = None
    currency: Optional[str] = None
    id: str = field(default_factory=new_record_id)
    timestamp: str = field(default_factory=utc_now_iso)

    @classmethod
    def purchase(
        cls,
        *,
        actor_id: str,
        actor_name: str,
        player_name: str,
        item_ref: str,
        item_name: str,
        price: Number,
        currency: str,
    ) -> "ActivityLogEntry":
        return cls(
            type=ActivityType.PURCHASE,
            actor_id=actor_id,
            actor_name=actor_name,
            player_name=player_name,
            item_ref=item_ref,
            item_name=item_name,
            price=price,
            currency=currency,
        )

    @classmethod
    def reservation(
        cls,
        *,
        actor_id: str,
        actor_name: str,
        player_name: str,
        item_ref: str,
        item_name: str,
    ) -> "ActivityLogEntry":
        return cls(
            type=ActivityType.RESERVATION,
            actor_id=actor_id,
            actor_name=actor_name,
            player_name=player_name,
            item_ref=item_ref,
            item_name=item_name,
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "type": self.type.value,
            "actorId": self.actor_id,
            "actorName": self.actor_name,
            "playerName": self.player_name,
            "itemUuid": self.item_ref,
            "itemName": self.item_name,
            "timestamp": self.timestamp,
        }
        if self.type is ActivityType.PURCHASE:
            data["price"] = self.price
            data["currency"] = self.currency
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ActivityLogEntry":
        return cls(
            type=ActivityType(data.get("type", ActivityType.PURCHASE.value)),
            actor_id=str(data.get("actorId") or ""),
            actor_name=data.get("actorName") or "",
            player_name=data.get("playerName") or "",
            item_ref=data.get("itemUuid") or "",
            item_name=data.get("itemName") or "",
            price=coerce_price(data.get("price")),
            currency=data.get("currency"),
            id=str(data.get("id") or new_record_id()),
            timestamp=str(data.get("timestamp") or utc_now_iso()),
        )
