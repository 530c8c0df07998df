"""
Market constants: record keys, limits, and user-facing failure messages.
"""

from __future__ import annotations

from enum import Enum

MODULE_ID = "fuorid20-arena-market"

# Durable record names
CURRENCY_NAME_KEY = "currencyName"
SHOP_OPEN_KEY = "shopOpen"
SHOP_CONFIG_KEY = "shopConfig"
ACTIVITY_LOG_KEY = "activityLog"
RESERVATIONS_KEY = "reservations"

DEFAULT_CURRENCY_NAME = "Ori"
ACTIVITY_LOG_LIMIT = 500
RECENT_ACTIVITY_LIMIT = 50
UNKNOWN_PLAYER = "Unknown"
SHOPPER_ACTOR_TYPE = "character"


class FailureReason(str, Enum):
    """Why a purchase or reservation was refused."""

    SHOP_CLOSED = "shop_closed"
    ACTOR_NOT_FOUND = "actor_not_found"
    ITEM_NOT_FOUND = "item_not_found"
    ITEM_NOT_CONFIGURED = "item_not_configured"
    SOLD_OUT = "sold_out"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    NOT_RESERVABLE = "not_reservable"
    ALREADY_RESERVED = "already_reserved"
    GRANT_FAILED = "grant_failed"
    NO_ACTOR_SELECTED = "no_actor_selected"
    RECORD_FAILED = "record_failed"


FAILURE_MESSAGES: dict[FailureReason, str] = {
    FailureReason.SHOP_CLOSED: "The shop is currently closed.",
    FailureReason.ACTOR_NOT_FOUND: "Actor not found",
    FailureReason.ITEM_NOT_FOUND: "Item not found",
    FailureReason.ITEM_NOT_CONFIGURED: "Item not configured in shop",
    FailureReason.SOLD_OUT: "This item is sold out!",
    FailureReason.INSUFFICIENT_FUNDS: "You don't have enough {currency}!",
    FailureReason.NOT_RESERVABLE: "Item is not available for reservation",
    FailureReason.ALREADY_RESERVED: "You have already reserved this item!",
    FailureReason.GRANT_FAILED: (
        "The item could not be delivered. Your {currency} has been refunded."
    ),
    FailureReason.NO_ACTOR_SELECTED: "Select a character first.",
    FailureReason.RECORD_FAILED: (
        "The purchase could not be recorded. Your {currency} has been refunded."
    ),
}

PURCHASE_SUCCESS_MESSAGE = "Purchased {item} for {price} {currency}!"
RESERVATION_SUCCESS_MESSAGE = "Reserved {item}! The GM has been notified."
