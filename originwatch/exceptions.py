"""Error types raised by the store and the notifiers."""

from uuid import UUID


class OriginWatchError(Exception):
    """Base exception for originwatch errors."""
    pass


class PersistenceError(OriginWatchError):
    """A read or write against the origin store failed."""

    def __init__(self, message: str, operation: str = None, origin_uid: UUID = None):
        super().__init__(message)
        self.operation = operation
        self.origin_uid = origin_uid


class NotificationError(OriginWatchError):
    """An alert could not be delivered to its channel."""

    def __init__(self, message: str, topic: str = None):
        super().__init__(message)
        self.topic = topic
