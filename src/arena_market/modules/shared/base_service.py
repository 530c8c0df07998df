"""
Base class for market services.

Gives a service its structured logger and a way to publish notifications on
the session's local bus. Persistence is not handled here: services write
through a ``UnitOfWork`` from the market repository.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Optional

if TYPE_CHECKING:
    from logging import Logger

    from arena_market.core.event.bus import EventBus


class BaseService:
    def __init__(self, event_bus: EventBus, logger: Logger) -> None:
        self._events = event_bus
        self.log = logger

    async def emit_event(
        self,
        event_type: str,
        data: Dict[str, Any],
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Publish on the local bus; ``context`` keys override ``data`` keys."""
        await self._events.publish(event_type, {**data, **(context or {})})

    def log_error(self, operation: str, error: Exception, **context: Any) -> None:
        self.log.error(
            f"{type(self).__name__} failed during {operation}: {error}",
            extra={
                "operation": operation,
                "error_type": type(error).__name__,
                "error_message": str(error),
                **context,
            },
        )
