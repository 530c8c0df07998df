from arena_market.modules.shared.base_service import BaseService
from arena_market.modules.shared.exceptions import (
    MarketDomainException,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)

__all__ = [
    "BaseService",
    "MarketDomainException",
    "NotFoundError",
    "PermissionDeniedError",
    "ValidationError",
]
