"""
Market domain exceptions.

Raised for admin input that breaks a shop rule, for mutations attempted by a
non-authoritative session and for lookups of unknown records. Purchase and
reservation refusals are never raised: the transaction engine reports them
as results so a forwarded request always gets an answer.
"""

from __future__ import annotations

from typing import Any, Optional

from arena_market.core.exceptions import ErrorSeverity, StructuredError


class MarketDomainException(StructuredError):
    """Base for shop rule violations."""

    DEFAULT_SEVERITY = ErrorSeverity.INFO


class NotFoundError(MarketDomainException):
    def __init__(self, resource_type: str, identifier: Optional[Any] = None) -> None:
        self.resource_type = resource_type
        self.identifier = identifier
        message = f"{resource_type} not found"
        if identifier is not None:
            message = f"{message}: {identifier}"
        super().__init__(
            message,
            {"resource_type": resource_type, "identifier": identifier},
            error_code=f"{resource_type.upper()}_NOT_FOUND",
        )


class ValidationError(MarketDomainException):
    """A stock count, price or setting value was rejected."""

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        self.validation_message = message
        super().__init__(
            f"Validation error for {field}: {message}",
            {"field": field},
            error_code=f"VALIDATION_{field.upper()}",
        )


class PermissionDeniedError(MarketDomainException):
    """A shop-management operation was called on a non-authoritative session."""

    DEFAULT_SEVERITY = ErrorSeverity.WARNING

    def __init__(self, action: str, session_id: Optional[str] = None) -> None:
        self.action = action
        self.session_id = session_id
        super().__init__(
            f"Only the authoritative session may {action}",
            {"action": action, "session_id": session_id},
            error_code="PERMISSION_DENIED",
        )
