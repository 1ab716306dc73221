"""Exception hierarchy for the monitoring core.

Check failures have no exception type here; they are recorded as failed
CheckResults.
"""
from typing import Optional


class UptimerError(Exception):
    """Base class for all errors raised by the monitoring core."""

    def __init__(self, message: str, cause: Optional[Exception] = None):
        super().__init__(message)
        self.message = message
        self.cause = cause


class PersistenceError(UptimerError):
    """The data store could not complete a read or write."""


class NotificationError(UptimerError):
    """A single notification channel failed to deliver."""


class ConfigurationError(UptimerError):
    """A rule or channel configuration is malformed."""


class InvalidTransitionError(UptimerError):
    """An alert status change is not allowed by the lifecycle."""

    def __init__(self, current: str, requested: str):
        super().__init__(f"Cannot move alert from {current} to {requested}")
        self.current = current
        self.requested = requested
