"""Error taxonomy for operations on the managed root."""


class StorageError(Exception):
    """Base class for failures of a single filesystem operation.

    Attributes:
        path: Root-relative or raw request path the operation targeted.
    """

    def __init__(self, message: str, path: str) -> None:
        """Initialize storage error.

        Args:
            message: Error description.
            path: The offending path value.
        """
        super().__init__(message)
        self.path = path


class InvalidPathError(StorageError):
    """Raised when a request path resolves outside the managed root."""


class NotFoundError(StorageError):
    """Raised when an operation requires an existing target."""


class AlreadyExistsError(StorageError):
    """Raised when create finds something already at the target."""


class IsDirectoryError(StorageError):
    """Raised when an operation requires a file but finds a directory."""


class IOFailureError(StorageError):
    """Raised when the underlying disk operation fails at the OS level."""
