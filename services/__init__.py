# Services module
from .db_lifecycle import DatabaseLifecycleManager, get_lifecycle_manager
from .default_accounts import ensure_default_users, reset_and_reseed
from .lifecycle_errors import (
    LifecycleError,
    NotFoundError,
    TransactionError,
    ValidationError,
)

__all__ = [
    "DatabaseLifecycleManager",
    "get_lifecycle_manager",
    "ensure_default_users",
    "reset_and_reseed",
    "LifecycleError",
    "NotFoundError",
    "TransactionError",
    "ValidationError",
]
