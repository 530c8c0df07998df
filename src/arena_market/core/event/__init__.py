"""
Market event system.

Local delivery goes through ``EventBus``; cross-session delivery goes through
a ``BroadcastTransport`` (in-process hub or Redis pub/sub).
"""

from arena_market.core.event.bus import EventBus, EventMetrics
from arena_market.core.event.transport import (
    BroadcastTransport,
    HubTransport,
    InProcessHub,
    RedisTransport,
    channel_for,
)
from arena_market.core.event.types import CallbackType, EventPayload, ListenerPriority

__all__ = [
    "EventBus",
    "EventMetrics",
    "BroadcastTransport",
    "HubTransport",
    "InProcessHub",
    "RedisTransport",
    "channel_for",
    "CallbackType",
    "EventPayload",
    "ListenerPriority",
]
