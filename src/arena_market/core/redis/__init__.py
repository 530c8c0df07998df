from arena_market.core.redis.service import RedisService

__all__ = ["RedisService"]
