"""Exceptions raised by runtop."""


class RuntopError(Exception):
    """Base class for all runtop errors."""


class InvalidSortField(RuntopError, ValueError):
    """Raised for a sort field name that is not recognized."""

    def __init__(self, field: object) -> None:
        self.field = field
        super().__init__(f"invalid sort field: {field!r}")


class InvalidOption(RuntopError, ValueError):
    """Raised for an unknown option key or an invalid option value."""


class InvalidFile(RuntopError):
    """Raised when a report log is missing, unreadable or malformed."""

    def __init__(self, path: object, reason: str = "") -> None:
        self.path = path
        self.reason = reason
        message = f"invalid file: {path}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


class CollectionFailure(RuntopError):
    """Raised by a provider when metrics for a single process cannot be fetched."""

    def __init__(self, pid: str, reason: str = "") -> None:
        self.pid = pid
        self.reason = reason
        super().__init__(f"could not collect {pid}: {reason}" if reason else pid)


class ProcessGone(CollectionFailure):
    """The process terminated before its metrics could be read."""


class WriteFailure(RuntopError):
    """Raised when a rendered or serialized report cannot be written."""
