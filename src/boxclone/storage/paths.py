"""Security-first resolution of request paths inside the managed root."""
import os
from dataclasses import dataclass, replace
from enum import Enum
from pathlib import Path, PurePosixPath

from boxclone.storage.errors import InvalidPathError


class PathKind(str, Enum):
    """What currently sits at a managed path on disk."""

    MISSING = "missing"
    FILE = "file"
    DIRECTORY = "directory"


@dataclass(frozen=True)
class ManagedPath:
    """A request path validated against the managed root.

    Attributes:
        absolute: Normalized absolute path, symlinks not followed. Its
            resolved target is always inside the root.
        relative: Root-relative POSIX path with a leading slash.
        directory_intent: Whether a write should create a directory.
        kind: On-disk kind as of the last stat.
    """

    absolute: Path
    relative: str
    directory_intent: bool
    kind: PathKind = PathKind.MISSING

    @property
    def is_root(self) -> bool:
        """True if this path is the managed root itself."""
        return self.relative == "/"

    def with_kind(self, kind: PathKind) -> "ManagedPath":
        return replace(self, kind=kind)


def is_directory_intent(request_path: str) -> bool:
    """Classify a request path as directory or file intent.

    A path ending with a separator, or whose last component has no
    extension, is treated as a directory. This is a naming heuristic and
    misclassifies extensionless file names such as ``Makefile``.

    Args:
        request_path: Raw path from the request.

    Returns:
        True for directory intent, False for file intent.
    """
    if not request_path or request_path.endswith("/"):
        return True
    return PurePosixPath(request_path).suffix == ""


def to_relative(root: Path, absolute: Path) -> str:
    """Express an absolute path relative to the root.

    Args:
        root: Resolved managed root.
        absolute: Absolute path inside the root.

    Returns:
        Root-relative POSIX path with a leading slash.

    Raises:
        ValueError: If the path is not inside the root.
    """
    relative = absolute.relative_to(root).as_posix()
    if relative == ".":
        return "/"
    return f"/{relative}"


def resolve_path(root: Path, request_path: str) -> ManagedPath:
    """Resolve a request path to a location within the managed root.

    Traversal outside the root is rejected lexically, before symlink
    resolution touches the disk. Symlinks are resolved only to check that
    their target stays inside the root; the returned path names the entry
    the request named, not its target. It has kind ``MISSING``
    until the executor inspects it.

    Args:
        root: Resolved managed root.
        request_path: Root-relative path from the request.

    Returns:
        Validated managed path.

    Raises:
        InvalidPathError: If the path contains a null byte or resolves
            outside the root.
    """
    if "\0" in request_path:
        raise InvalidPathError("Path contains null byte", request_path)

    lexical = Path(os.path.normpath(root / request_path.lstrip("/")))
    if not lexical.is_relative_to(root):
        raise InvalidPathError(f"Path escapes managed root: {root}", request_path)

    resolved = lexical.resolve()
    if not resolved.is_relative_to(root):
        raise InvalidPathError(f"Path resolves outside managed root: {root}", request_path)

    return ManagedPath(
        absolute=lexical,
        relative=to_relative(root, lexical),
        directory_intent=is_directory_intent(request_path),
    )


def is_hidden(root: Path, path: Path) -> bool:
    """Check whether any component below the root is dot-prefixed.

    Args:
        root: Resolved managed root.
        path: Absolute path to check.

    Returns:
        True if the entry or one of its ancestors under the root is hidden.
    """
    try:
        parts = path.relative_to(root).parts
    except ValueError:
        return False
    return any(part.startswith(".") for part in parts)
