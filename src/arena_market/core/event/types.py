"""
Listener types for the market EventBus.

Payloads are plain dicts so a notification can cross the broadcast transport
unchanged. Listeners are ordered by ``(priority, sequence)``: lower priority
values run first, and ``sequence`` keeps registration order inside a tier.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Union

EventPayload = dict[str, Any]

CallbackType = Union[
    Callable[[EventPayload], Any],
    Callable[[EventPayload], Awaitable[Any]],
]


class ListenerPriority(Enum):
    """Dispatch tiers, lowest value first."""

    CRITICAL = 0
    HIGH = 10
    NORMAL = 50
    LOW = 100


def default_identifier(event_name: str, callback: CallbackType) -> str:
    """
    ``module.qualname@event`` for a callback.

    Bound methods get the owner's id appended, since two sessions subscribing
    the same method would otherwise collide.
    """
    module = getattr(callback, "__module__", None) or "unknown"
    name = getattr(callback, "__qualname__", None) or getattr(callback, "__name__", "callback")
    identifier = f"{module}.{name}@{event_name}"

    owner = getattr(callback, "__self__", None)
    if owner is not None:
        identifier += f"#{id(owner):x}"
    return identifier


@dataclass(slots=True, frozen=True)
class EventListener:
    """One subscription: an event name or glob pattern plus its callback."""

    pattern: str
    callback: CallbackType
    identifier: str
    priority: ListenerPriority = ListenerPriority.NORMAL
    once: bool = False
    sequence: int = 0

    @property
    def is_wildcard(self) -> bool:
        return any(char in self.pattern for char in "*?[")

    @property
    def order(self) -> tuple[int, int]:
        return (self.priority.value, self.sequence)
