"""
Configuration subsystem for Arena Market.

Static configuration is loaded from environment variables (.env supported)
at import time and exposed through the class-level ``Config`` singleton.

Usage
-----
```python
from arena_market.core.config import Config

if Config.is_production():
    logger.info("Running in production mode")

timeout = Config.request_timeout()
```
"""

from arena_market.core.config.config import Config, Environment

__all__ = [
    "Config",
    "Environment",
]
