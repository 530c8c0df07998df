from arena_market.core.database.base import Base, IdMixin, TimestampMixin
from arena_market.core.database.service import (
    DatabaseInitializationError,
    DatabaseNotInitializedError,
    DatabaseService,
)

__all__ = [
    "Base",
    "IdMixin",
    "TimestampMixin",
    "DatabaseInitializationError",
    "DatabaseNotInitializedError",
    "DatabaseService",
]
