"""Storage module for path resolution and errors on the managed root.

The executor lives in ``boxclone.storage.executor`` and is imported from
there directly, since it depends on the events package.
"""

from boxclone.storage.errors import (
    AlreadyExistsError,
    InvalidPathError,
    IOFailureError,
    IsDirectoryError,
    NotFoundError,
    StorageError,
)
from boxclone.storage.paths import (
    ManagedPath,
    PathKind,
    is_directory_intent,
    is_hidden,
    resolve_path,
    to_relative,
)

__all__ = [
    "AlreadyExistsError",
    "IOFailureError",
    "InvalidPathError",
    "IsDirectoryError",
    "ManagedPath",
    "NotFoundError",
    "PathKind",
    "StorageError",
    "is_directory_intent",
    "is_hidden",
    "resolve_path",
    "to_relative",
]
