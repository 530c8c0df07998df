from arena_market.core.logging.logger import (
    LogContext,
    get_log_context,
    get_logger,
    new_correlation_id,
    setup_logging,
    shutdown_logging,
)

__all__ = [
    "LogContext",
    "get_log_context",
    "get_logger",
    "new_correlation_id",
    "setup_logging",
    "shutdown_logging",
]
