class MemoraCardError(Exception):
    """Base class for errors raised by memoracard"""


class StorageError(MemoraCardError):
    """A durable read or write did not complete (I/O error, disk full, locked database)"""


class SnapshotError(StorageError):
    """
    The session checkpoint could not be written.

    The rating that preceded it was already persisted and applied in memory,
    so callers must not retry the rating.
    """


class InvalidStateError(MemoraCardError):
    """Operation is not allowed in the session's current state"""


class SessionBusyError(InvalidStateError):
    """Another operation on the same session is still in flight"""


class NotFoundError(MemoraCardError):
    """A deck or card with the given id does not exist"""
