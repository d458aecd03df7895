"""Iterative directory traversal for bulk operations on a subtree."""

import os
from collections.abc import Iterator
from pathlib import Path
from typing import NamedTuple


class TreeEntry(NamedTuple):
    """Single entry produced by a tree walk.

    Attributes:
        path: Absolute path of the entry.
        is_dir: Whether the entry is a real directory (symlinks are not).
    """

    path: Path
    is_dir: bool


def iter_tree(top: Path, include_hidden: bool = True) -> Iterator[TreeEntry]:
    """Walk a directory tree with an explicit stack.

    Entries are yielded in name order within each directory, and a
    directory always appears before anything inside it. Symlinks are
    yielded but never followed. ``top`` itself is not yielded.
    Directories that vanish or cannot be listed mid-walk are skipped.

    Args:
        top: Directory to walk.
        include_hidden: Whether to yield and descend into dot-prefixed
            entries.

    Yields:
        Tree entries below ``top``.
    """
    stack: list[Path] = [top]

    while stack:
        current = stack.pop()
        try:
            with os.scandir(current) as it:
                entries = sorted(it, key=lambda e: e.name)
        except OSError:
            continue

        pending: list[Path] = []
        for entry in entries:
            if not include_hidden and entry.name.startswith("."):
                continue
            try:
                is_dir = entry.is_dir(follow_symlinks=False)
            except OSError:
                continue
            path = Path(entry.path)
            yield TreeEntry(path, is_dir)
            if is_dir:
                pending.append(path)

        # Reverse so the first listed subdirectory is popped first.
        stack.extend(reversed(pending))


def remove_tree(top: Path) -> int:
    """Remove a directory and everything below it without recursion.

    Args:
        top: Directory to remove.

    Returns:
        Number of entries removed, including ``top``.

    Raises:
        OSError: If any entry cannot be removed.
    """
    entries = list(iter_tree(top))
    for entry in reversed(entries):
        if entry.is_dir:
            entry.path.rmdir()
        else:
            entry.path.unlink()
    top.rmdir()
    return len(entries) + 1
