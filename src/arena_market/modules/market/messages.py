"""
Wire messages exchanged between market sessions.

Every message on the module channel is one JSON object::

    {"event": "itemPurchased", "payload": {...}, "sender": "<session id>"}

or, for directed request/response traffic::

    {"action": "purchaseResult", "payload": {"result": {...}},
     "sender": "<gm session>", "targetUser": "<player session>",
     "correlationId": "<id of the request>"}
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Optional

from arena_market.core.logging.logger import new_correlation_id


class MarketEvent(str, Enum):
    """Broadcast notifications."""

    SHOP_STATE_CHANGED = "shopStateChanged"
    ITEM_PURCHASED = "itemPurchased"
    ITEM_RESERVED = "itemReserved"
    CONFIG_UPDATED = "configUpdated"
    REFRESH_UI = "refreshUI"


class MarketAction(str, Enum):
    """Directed request/response actions."""

    PURCHASE_REQUEST = "purchaseRequest"
    RESERVE_REQUEST = "reserveRequest"
    PURCHASE_RESULT = "purchaseResult"
    RESERVE_RESULT = "reserveResult"

    @property
    def is_request(self) -> bool:
        return self in REQUEST_REPLIES

    @property
    def is_result(self) -> bool:
        return self in REQUEST_REPLIES.values()


REQUEST_REPLIES: dict[MarketAction, MarketAction] = {
    MarketAction.PURCHASE_REQUEST: MarketAction.PURCHASE_RESULT,
    MarketAction.RESERVE_REQUEST: MarketAction.RESERVE_RESULT,
}


def _parse_enum(enum_type: Any, value: Any) -> Any:
    if value is None:
        return None
    try:
        return enum_type(value)
    except ValueError:
        return None


@dataclass(frozen=True)
class MarketMessage:
    """
    Envelope for one message on the module channel.

    Exactly one of ``event`` or ``action`` is set on a well-formed message.
    Messages naming an unknown event or action decode with both unset and are
    ignored by receivers.
    """

    event: Optional[MarketEvent] = None
    action: Optional[MarketAction] = None
    payload: Mapping[str, Any] = field(default_factory=dict)
    sender: Optional[str] = None
    target_user: Optional[str] = None
    correlation_id: Optional[str] = None

    @classmethod
    def notification(
        cls, event: MarketEvent, payload: Mapping[str, Any], sender: str
    ) -> "MarketMessage":
        return cls(event=event, payload=dict(payload), sender=sender)

    @classmethod
    def request(
        cls, action: MarketAction, payload: Mapping[str, Any], sender: str
    ) -> "MarketMessage":
        return cls(
            action=action,
            payload=dict(payload),
            sender=sender,
            correlation_id=new_correlation_id(),
        )

    def reply(self, payload: Mapping[str, Any], sender: str) -> "MarketMessage":
        """Build the directed result for this request."""
        if self.action is None or not self.action.is_request:
            raise ValueError(f"Cannot reply to non-request message {self.action!r}")
        return MarketMessage(
            action=REQUEST_REPLIES[self.action],
            payload=dict(payload),
            sender=sender,
            target_user=self.sender,
            correlation_id=self.correlation_id,
        )

    def to_wire(self) -> dict[str, Any]:
        wire: dict[str, Any] = {"payload": dict(self.payload), "sender": self.sender}
        if self.event is not None:
            wire["event"] = self.event.value
        if self.action is not None:
            wire["action"] = self.action.value
        if self.target_user is not None:
            wire["targetUser"] = self.target_user
        if self.correlation_id is not None:
            wire["correlationId"] = self.correlation_id
        return wire

    @classmethod
    def from_wire(cls, data: Mapping[str, Any]) -> "MarketMessage":
        payload = data.get("payload")
        return cls(
            event=_parse_enum(MarketEvent, data.get("event")),
            action=_parse_enum(MarketAction, data.get("action")),
            payload=dict(payload) if isinstance(payload, Mapping) else {},
            sender=data.get("sender"),
            target_user=data.get("targetUser"),
            correlation_id=data.get("correlationId"),
        )
