"""
Error taxonomy for the Appointment Watcher.

ConfigurationError is the only error that stops the process. The others are
caught at the step that raised them and isolated to that message or cycle.
"""


class WatcherError(Exception):
    """Base exception for all watcher errors."""
    pass


class ConfigurationError(WatcherError):
    """Raised when required startup settings are missing."""
    pass


class TransportError(WatcherError):
    """Raised for mailbox connect/list/fetch/mark-read/disconnect failures."""
    pass


class AnalysisError(WatcherError):
    """Raised inside the analyzer for a failed classification attempt.

    Attributes:
        kind: FailureKind describing what went wrong
    """

    def __init__(self, kind, message: str = ''):
        super().__init__(message or str(kind))
        self.kind = kind


class PersistenceError(WatcherError):
    """Raised when a record could not be fully written to the store."""
    pass


class NotificationError(WatcherError):
    """Raised when the staff notification could not be delivered."""
    pass
