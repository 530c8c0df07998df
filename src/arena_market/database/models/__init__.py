"""SQLAlchemy models; importing this package registers every market table."""

from arena_market.database.models.actor import ActorItemRecord, ActorRecord
from arena_market.database.models.market_setting import MarketSetting

__all__ = [
    "ActorItemRecord",
    "ActorRecord",
    "MarketSetting",
]
