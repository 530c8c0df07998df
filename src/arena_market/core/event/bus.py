"""
Market EventBus: in-process async pub/sub with ordered, isolated delivery.

Purpose
-------
The local half of market notifications. Every session owns one bus; the
broadcast half (other sessions, other processes) lives in
``arena_market.core.event.transport`` and feeds received notifications back
into this bus.

Delivery Rules
--------------
- Listeners run one at a time, by priority then registration order, and
  ``publish`` returns only after the last one finished. A cache refresh
  listener therefore completes before the next notification is handled.
- A failing listener is logged and counted; the rest still run and the
  publisher never sees the exception.
- Callbacks may be sync or async.
"""

from __future__ import annotations

import inspect
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from arena_market.core.event.registry import ListenerRegistry
from arena_market.core.event.types import (
    CallbackType,
    EventListener,
    EventPayload,
    ListenerPriority,
    default_identifier,
)
from arena_market.core.logging.logger import LogContext, get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class EventMetrics:
    """Snapshot of what one bus has published and how often listeners failed."""

    events_published: Mapping[str, int] = field(default_factory=dict)
    listener_errors: Mapping[str, int] = field(default_factory=dict)
    total_listeners: int = 0

    def get_summary(self) -> dict[str, Any]:
        published = sum(self.events_published.values())
        errors = sum(self.listener_errors.values())
        return {
            "total_events_published": published,
            "events_by_type": dict(self.events_published),
            "total_errors": errors,
            "errors_by_event": dict(self.listener_errors),
            "total_listeners": self.total_listeners,
            "error_rate": round(errors / max(1, published) * 100.0, 2),
        }


def _check_arity(callback: CallbackType) -> None:
    try:
        signature = inspect.signature(callback)
    except (TypeError, ValueError):
        return

    positional = [
        p for p in signature.parameters.values() if p.kind not in (p.VAR_KEYWORD, p.KEYWORD_ONLY)
    ]
    if len(positional) == 1 or any(p.kind is p.VAR_POSITIONAL for p in positional):
        return

    name = getattr(callback, "__qualname__", None) or repr(callback)
    raise ValueError(
        f"Event listener must accept exactly 1 parameter (EventPayload), "
        f"got {len(positional)} parameters for '{name}'"
    )


class EventBus:
    """
    Ordered in-process event bus for one session.

    Not thread-safe; every call must come from the same event loop.

    Examples
    --------
    >>> bus = EventBus(name="market:gm")
    >>> bus.subscribe("itemPurchased", on_item_purchased)
    >>> await bus.publish("itemPurchased", {"itemUuid": ref, "newStock": 4})
    """

    def __init__(self, *, enable_metrics: bool = True, name: str = "default") -> None:
        self.name = name
        self._registry = ListenerRegistry()
        self._metrics_enabled = enable_metrics
        self._published: Counter[str] = Counter()
        self._errors: Counter[str] = Counter()

    # ------------------------------------------------------------------ #
    # Subscription
    # ------------------------------------------------------------------ #

    def subscribe(
        self,
        event_name: str,
        callback: CallbackType,
        *,
        priority: ListenerPriority = ListenerPriority.NORMAL,
        identifier: Optional[str] = None,
        once: bool = False,
        allow_duplicates: bool = False,
    ) -> str:
        """
        Register ``callback`` for an event name or glob pattern.

        Returns the listener identifier used by ``unsubscribe``. Registering
        the same identifier for the same pattern twice is a no-op unless
        ``allow_duplicates`` is set.
        """
        _check_arity(callback)
        identifier = identifier or default_identifier(event_name, callback)

        listener = self._registry.add(
            event_name,
            callback,
            identifier,
            priority=priority,
            once=once,
            allow_duplicates=allow_duplicates,
        )
        if listener is None:
            logger.warning(
                "EventBus: duplicate listener prevented",
                extra={"bus_name": self.name, "event_name": event_name, "listener_id": identifier},
            )
        else:
            logger.debug(
                "EventBus: subscribed listener",
                extra={
                    "bus_name": self.name,
                    "event_name": event_name,
                    "listener_id": identifier,
                    "priority": priority.name,
                    "once": once,
                },
            )
        return identifier

    def unsubscribe(self, event_name: str, identifier: str) -> bool:
        removed = self._registry.remove(event_name, identifier) > 0
        if removed:
            logger.debug(
                "EventBus: unsubscribed listener",
                extra={"bus_name": self.name, "event_name": event_name, "listener_id": identifier},
            )
        return removed

    def clear(self) -> None:
        removed = self._registry.clear()
        logger.debug(
            "EventBus: cleared all listeners",
            extra={"bus_name": self.name, "previous_listener_count": removed},
        )

    # ------------------------------------------------------------------ #
    # Publishing
    # ------------------------------------------------------------------ #

    async def publish(self, event_name: str, data: EventPayload) -> list[Any]:
        """
        Deliver ``data`` to every matching listener.

        Returns the results of the listeners that completed; failed listeners
        contribute nothing.
        """
        if self._metrics_enabled:
            self._published[event_name] += 1

        listeners = self._registry.take(event_name)
        if not listeners:
            return []

        results: list[Any] = []
        # Payload keys only; values may carry balances and names.
        async with LogContext(event_name=event_name, event_keys=sorted(data)):
            for listener in listeners:
                try:
                    result = listener.callback(data)
                    if inspect.isawaitable(result):
                        result = await result
                except Exception as exc:
                    self._listener_failed(event_name, listener, exc)
                    continue
                results.append(result)
        return results

    def _listener_failed(self, event_name: str, listener: EventListener, exc: Exception) -> None:
        if self._metrics_enabled:
            self._errors[event_name] += 1
        logger.error(
            "EventBus listener error",
            extra={
                "bus_name": self.name,
                "event_name": event_name,
                "listener_id": listener.identifier,
                "priority": listener.priority.name,
                "error": str(exc),
                "error_type": type(exc).__name__,
            },
            exc_info=True,
        )

    # ------------------------------------------------------------------ #
    # Introspection
    # ------------------------------------------------------------------ #

    def get_metrics(self) -> Optional[EventMetrics]:
        if not self._metrics_enabled:
            return None
        return EventMetrics(
            events_published=dict(self._published),
            listener_errors=dict(self._errors),
            total_listeners=len(self._registry),
        )

    def get_metrics_summary(self) -> dict[str, Any]:
        metrics = self.get_metrics()
        return metrics.get_summary() if metrics else {}

    def get_listener_count(self, event_name: Optional[str] = None) -> int:
        """Listeners in total, or those an event would reach (wildcards included)."""
        if event_name:
            return self._registry.count(event_name)
        return len(self._registry)

    def get_all_events(self) -> list[str]:
        return self._registry.patterns()
