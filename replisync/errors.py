# Replisync Errors
# Exception hierarchy, grouped by where a failure originates


class ReplicationError(Exception):
    """Base exception for replication failures."""

    def __init__(self, message: str, replication_identifier: str = ""):
        self.message = message
        self.replication_identifier = replication_identifier
        super().__init__(message)


class PushHandlerError(ReplicationError):
    """The push handler raised while sending a batch."""

    def __init__(self, message: str, replication_identifier: str = "", batch_size: int = 0):
        self.batch_size = batch_size
        super().__init__(message, replication_identifier)


class PullHandlerError(ReplicationError):
    """The pull handler raised while fetching changes."""

    def __init__(self, message: str, replication_identifier: str = "", checkpoint=None):
        self.checkpoint = checkpoint
        super().__init__(message, replication_identifier)


class MalformedResponseError(PullHandlerError):
    """The pull handler returned something that is not a valid pull response."""


class StorageError(ReplicationError):
    """Local storage (collection or checkpoint store) could not be read or written."""


class ReplicationCancelledError(ReplicationError):
    """The replication was cancelled before the awaited condition was reached."""


class HandlerImportError(ReplicationError):
    """A handler reference of the form 'module:attribute' could not be resolved."""
