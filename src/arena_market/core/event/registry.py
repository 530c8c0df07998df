"""
Listener registry for the market EventBus.

A flat list of subscriptions, matched either exactly or as a shell glob
(``item*``, ``market.transaction.?ailed``). Sessions hold a handful of
listeners, so a linear scan per publish is enough.
"""

from __future__ import annotations

import itertools
from fnmatch import fnmatchcase
from typing import Optional

from arena_market.core.event.types import CallbackType, EventListener, ListenerPriority


class ListenerRegistry:
    """Ordered storage of ``EventListener`` entries. Single event loop only."""

    def __init__(self) -> None:
        self._listeners: list[EventListener] = []
        self._sequence = itertools.count()

    def __len__(self) -> int:
        return len(self._listeners)

    def add(
        self,
        pattern: str,
        callback: CallbackType,
        identifier: str,
        *,
        priority: ListenerPriority,
        once: bool,
        allow_duplicates: bool,
    ) -> Optional[EventListener]:
        """Register a listener. Returns None when it would be a duplicate."""
        if not allow_duplicates and self._find(pattern, identifier) is not None:
            return None

        listener = EventListener(
            pattern=pattern,
            callback=callback,
            identifier=identifier,
            priority=priority,
            once=once,
            sequence=next(self._sequence),
        )
        self._listeners.append(listener)
        return listener

    def remove(self, pattern: str, identifier: str) -> int:
        """Drop every listener registered under ``pattern`` with ``identifier``."""
        kept = [
            listener
            for listener in self._listeners
            if not (listener.pattern == pattern and listener.identifier == identifier)
        ]
        removed = len(self._listeners) - len(kept)
        self._listeners = kept
        return removed

    def clear(self) -> int:
        removed = len(self._listeners)
        self._listeners = []
        return removed

    def take(self, event_name: str) -> list[EventListener]:
        """
        Listeners for ``event_name`` in dispatch order.

        ``once`` listeners are unregistered here, before they run, so a
        listener that publishes the same event cannot trigger itself again.
        """
        matched = [listener for listener in self._listeners if _matches(listener, event_name)]
        if any(listener.once for listener in matched):
            spent = {id(listener) for listener in matched if listener.once}
            self._listeners = [entry for entry in self._listeners if id(entry) not in spent]
        return sorted(matched, key=lambda listener: listener.order)

    def count(self, event_name: str) -> int:
        return sum(1 for listener in self._listeners if _matches(listener, event_name))

    def patterns(self) -> list[str]:
        return sorted({listener.pattern for listener in self._listeners})

    def _find(self, pattern: str, identifier: str) -> Optional[EventListener]:
        for listener in self._listeners:
            if listener.pattern == pattern and listener.identifier == identifier:
                return listener
        return None


def _matches(listener: EventListener, event_name: str) -> bool:
    if listener.is_wildcard:
        return fnmatchcase(event_name, listener.pattern)
    return listener.pattern == event_name
