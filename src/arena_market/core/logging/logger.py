"""
Arena Market Logging

Purpose
-------
One logging stack for every session in the process:

- Structured JSON records in production, readable (optionally colored) lines
  in development.
- ``LogContext`` carries session, actor, item and correlation id through a
  transaction via ContextVars, including across awaits.
- Records are queued by the emitting task and written by a listener thread,
  so a slow sink never stalls the event loop. A full queue drops records
  instead of blocking.
- Optional daily-rotated JSON file next to the console output.

Usage
-----
    logger = get_logger(__name__)
    async with LogContext(session_id="gm", operation="purchase"):
        logger.info("Purchase completed", extra={"price": 50})

``setup_logging()`` is called by the entry point only, never on import, so
tests and embedding applications keep control of the root logger.
"""

from __future__ import annotations

import json
import logging
import queue
import sys
import uuid
from contextvars import ContextVar, Token
from datetime import datetime, timezone
from logging import Logger
from logging.handlers import QueueHandler, QueueListener, TimedRotatingFileHandler
from typing import Any, Dict, Optional

from arena_market.core.config.config import Config

_context: ContextVar[Dict[str, Any]] = ContextVar("market_log_context", default={})

CONSOLE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)-34s | %(message)s%(context_suffix)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
LOG_FILE_NAME = "arena_market_daily.json.log"
QUEUE_MAX_SIZE = 10_000

# Attributes every LogRecord has; anything else on a record came from ``extra``.
_RECORD_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None))
) | {"message", "asctime", "context", "context_suffix", "taskName"}

_dropped_records = 0


# ============================================================================
# Filters & Formatters
# ============================================================================


class ContextFilter(logging.Filter):
    """Copy the active LogContext onto the record before it is queued."""

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        context = dict(_context.get())
        record.context = context
        record.context_suffix = (
            " | " + " ".join(f"{key}={value}" for key, value in sorted(context.items()))
            if context
            else ""
        )
        return True


class ColoredFormatter(logging.Formatter):
    COLORS = {
        "DEBUG": "\033[90m",
        "INFO": "\033[94m",
        "WARNING": "\033[93m",
        "ERROR": "\033[91m",
        "CRITICAL": "\033[91m\033[1m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        plain = record.levelname
        color = self.COLORS.get(plain)
        if color:
            record.levelname = f"{color}{plain}{self.RESET}"
        try:
            return super().format(record)
        finally:
            record.levelname = plain


class JSONFormatter(logging.Formatter):
    """One JSON object per record: base fields, context, then ``extra``."""

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        data: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "function": record.funcName,
            "line": record.lineno,
        }
        data.update(getattr(record, "context", {}))

        extra = {
            key: value
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRS and not key.startswith("_")
        }
        if extra:
            data["extra"] = extra
        if record.exc_info:
            data["exception"] = self.formatException(record.exc_info)

        return json.dumps(data, ensure_ascii=False, default=str)


class _DroppingQueueHandler(QueueHandler):
    def enqueue(self, record: logging.LogRecord) -> None:  # type: ignore[override]
        global _dropped_records
        try:
            self.queue.put_nowait(record)
        except queue.Full:
            _dropped_records += 1


# ============================================================================
# Setup / Shutdown
# ============================================================================

_listener: Optional[QueueListener] = None


def _log_level() -> int:
    return getattr(logging, str(Config.LOG_LEVEL or "INFO").upper(), logging.INFO)


def _use_json() -> bool:
    if Config.LOG_JSON is None:
        return Config.is_production()
    return bool(Config.LOG_JSON)


def _console_handler() -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    if _use_json():
        handler.setFormatter(JSONFormatter())
    elif sys.stdout.isatty():
        handler.setFormatter(ColoredFormatter(CONSOLE_FORMAT, DATE_FORMAT))
    else:
        handler.setFormatter(logging.Formatter(CONSOLE_FORMAT, DATE_FORMAT))
    return handler


def _file_handler() -> logging.Handler:
    Config.LOGS_DIR.mkdir(parents=True, exist_ok=True)
    handler = TimedRotatingFileHandler(
        filename=str(Config.LOGS_DIR / LOG_FILE_NAME),
        when="midnight",
        backupCount=1,
        encoding="utf-8",
        utc=True,
    )
    handler.setFormatter(JSONFormatter())
    return handler


def setup_logging() -> None:
    """Install the queue-backed logging stack on the root logger. Idempotent."""
    global _listener

    if _listener is not None:
        return

    level = _log_level()
    handlers = [_console_handler()]
    if Config.LOG_TO_FILE:
        handlers.append(_file_handler())
    for handler in handlers:
        handler.setLevel(level)

    log_queue: "queue.Queue[logging.LogRecord]" = queue.Queue(QUEUE_MAX_SIZE)
    _listener = QueueListener(log_queue, *handlers, respect_handler_level=True)
    _listener.start()

    queue_handler = _DroppingQueueHandler(log_queue)
    queue_handler.addFilter(ContextFilter())

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(level)
    root.addHandler(queue_handler)

    logging.getLogger("asyncio").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

    logging.getLogger(__name__).info(
        "Logging initialized",
        extra={
            "environment": Config.ENVIRONMENT,
            "log_level": logging.getLevelName(level),
            "json": _use_json(),
            "log_to_file": Config.LOG_TO_FILE,
        },
    )


def shutdown_logging() -> None:
    """Flush the queue and detach every root handler."""
    global _listener

    if _listener is None:
        return

    logging.getLogger(__name__).info(
        "Shutting down logging", extra={"dropped_records": _dropped_records}
    )
    _listener.stop()
    for handler in _listener.handlers:
        handler.close()
    _listener = None
    logging.getLogger().handlers.clear()


# ============================================================================
# Public API
# ============================================================================


def get_logger(name: str) -> Logger:
    return logging.getLogger(name)


def new_correlation_id() -> str:
    return uuid.uuid4().hex


class LogContext:
    """
    Scoped logging context. Works as both a sync and an async context manager.

    Fields not passed explicitly are inherited from the enclosing context, so
    a nested LogContext for one transaction keeps the session id set by the
    session that started it.
    """

    def __init__(
        self,
        session_id: Optional[str] = None,
        actor_id: Optional[str] = None,
        item_ref: Optional[str] = None,
        component: Optional[str] = None,
        operation: Optional[str] = None,
        correlation_id: Optional[str] = None,
        **extra: Any,
    ) -> None:
        fields = {
            "session_id": session_id,
            "actor_id": actor_id,
            "item_ref": item_ref,
            "component": component,
            "operation": operation,
            "correlation_id": correlation_id,
            **extra,
        }
        self._overrides = {key: value for key, value in fields.items() if value is not None}
        self.context: Dict[str, Any] = {}
        self._token: Optional[Token[Dict[str, Any]]] = None

    def __enter__(self) -> "LogContext":
        merged = {**_context.get(), **self._overrides}
        merged.setdefault("correlation_id", new_correlation_id())
        self.context = merged
        self._token = _context.set(merged)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._token is not None:
            _context.reset(self._token)
            self._token = None

    async def __aenter__(self) -> "LogContext":
        return self.__enter__()

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        self.__exit__(exc_type, exc_val, exc_tb)


def get_log_context() -> Dict[str, Any]:
    return dict(_context.get())
