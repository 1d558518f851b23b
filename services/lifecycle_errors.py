"""Exceptions raised by the database lifecycle services."""


class LifecycleError(Exception):
    """Base class for database lifecycle failures."""

    pass


class NotFoundError(LifecycleError):
    """An expected source file (primary database or backup) is missing."""

    pass


class ValidationError(LifecycleError, ValueError):
    """An upload was rejected before anything touched the disk."""

    pass


class TransactionError(LifecycleError):
    """The reset transaction failed and every change was rolled back."""

    pass
