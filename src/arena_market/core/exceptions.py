"""
Infrastructure exceptions.

Settings store and broadcast transport failures. These propagate out of the
transaction engine untouched: a broken store or channel is an engineering
problem, not a shop rule, so it is never folded into a transaction result.

``StructuredError`` is also the base of the market domain exceptions in
``arena_market.modules.shared.exceptions``; both hierarchies serialize the
same way so an error can travel back to a requesting session.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional


class ErrorSeverity(Enum):
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class StructuredError(Exception):
    """
    Exception with a stable code, structured details and a severity.

    Subclasses set ``DEFAULT_SEVERITY`` and ``DEFAULT_RETRYABLE`` and pass an
    ``error_code``; when none is given the class name is used.
    """

    DEFAULT_SEVERITY: ErrorSeverity = ErrorSeverity.ERROR
    DEFAULT_RETRYABLE: bool = False

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        *,
        error_code: Optional[str] = None,
        severity: Optional[ErrorSeverity] = None,
        is_retryable: Optional[bool] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details: Dict[str, Any] = details or {}
        self.error_code = error_code or type(self).__name__
        self.severity = severity or self.DEFAULT_SEVERITY
        self.is_retryable = self.DEFAULT_RETRYABLE if is_retryable is None else is_retryable

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error_type": type(self).__name__,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
            "severity": self.severity.value,
            "is_retryable": self.is_retryable,
        }

    def __str__(self) -> str:
        if not self.details:
            return f"[{self.error_code}] {self.message}"
        return f"[{self.error_code}] {self.message} | Details: {self.details}"


class MarketInfrastructureException(StructuredError):
    """Base for store and transport failures."""


class StoreError(MarketInfrastructureException):
    """Reading or writing settings records failed. Nothing was written."""

    DEFAULT_RETRYABLE = True

    def __init__(
        self,
        operation: str,
        original_error: Exception,
        keys: Optional[list[str]] = None,
    ) -> None:
        self.operation = operation
        self.original_error = original_error
        super().__init__(
            f"Settings store error during {operation}: {original_error}",
            {
                "operation": operation,
                "keys": keys or [],
                "error_type": type(original_error).__name__,
            },
            error_code="STORE_ERROR",
        )


class TransportError(MarketInfrastructureException):
    """The broadcast channel could not send, receive or answer in time."""

    DEFAULT_RETRYABLE = True

    def __init__(
        self,
        operation: str,
        original_error: Optional[Exception] = None,
        channel: Optional[str] = None,
    ) -> None:
        self.operation = operation
        self.original_error = original_error
        reason = str(original_error) if original_error else "transport unavailable"
        super().__init__(
            f"Transport error during {operation}: {reason}",
            {
                "operation": operation,
                "channel": channel,
                "error_type": type(original_error).__name__ if original_error else None,
            },
            error_code="TRANSPORT_ERROR",
        )
