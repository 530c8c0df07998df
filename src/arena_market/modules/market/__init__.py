"""
Market Module
=============

Shop state, transactions and cross-session messaging.

Exports:
- MarketSession: One participant (GM or player) in a market namespace
- TransactionEngine / TransactionResult: Purchase and reservation protocols
- ShopLedger / ActivityLog: Committed shop state and history
- MarketRepository / UnitOfWork: Typed, atomic access to the durable records
- build_catalog_view: Shop screen read model
"""

from .activity import ActivityLog
from .engine import TransactionEngine, TransactionResult
from .ledger import ShopLedger
from .repository import MarketRepository, UnitOfWork
from .session import MarketSession
from .views import build_catalog_view

__all__ = [
    "ActivityLog",
    "MarketRepository",
    "MarketSession",
    "ShopLedger",
    "TransactionEngine",
    "TransactionResult",
    "UnitOfWork",
    "build_catalog_view",
]
