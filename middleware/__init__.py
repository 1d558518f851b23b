# Middleware module
from .request_logger import (
    clear_request_logs,
    get_request_logs,
    get_request_stats,
    init_request_logging,
)

__all__ = [
    "init_request_logging",
    "get_request_logs",
    "get_request_stats",
    "clear_request_logs",
]
