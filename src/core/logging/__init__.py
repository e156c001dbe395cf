"""
DachsTaler logging: queue-backed structured logs with player/action context.
"""

from src.core.logging.logger import (
    LogContext,
    get_log_context,
    get_logger,
    setup_logging,
    shutdown_logging,
)

__all__ = [
    "LogContext",
    "get_log_context",
    "get_logger",
    "setup_logging",
    "shutdown_logging",
]
