"""Filesystem operations on the managed root with change publication."""

import asyncio
import mimetypes
import os
import stat as stat_module
from dataclasses import dataclass
from pathlib import Path
from typing import IO

import structlog

from boxclone.events.bus import EventBus
from boxclone.events.normalizer import change_for_operation
from boxclone.events.types import ChangeEvent, ChangeKind, TargetKind
from boxclone.storage.archive import build_archive
from boxclone.storage.errors import (
    AlreadyExistsError,
    InvalidPathError,
    IOFailureError,
    IsDirectoryError,
    NotFoundError,
)
from boxclone.storage.paths import ManagedPath, PathKind, resolve_path
from boxclone.storage.walker import remove_tree

logger = structlog.get_logger()

DEFAULT_MEDIA_TYPE = "application/octet-stream"


@dataclass(frozen=True)
class DirectoryListing:
    """Read result for a directory.

    Attributes:
        path: Managed path that was read.
        entries: Entry names, sorted.
    """

    path: ManagedPath
    entries: list[str]


@dataclass(frozen=True)
class FileDescriptor:
    """Read result for a file; the bytes are streamed by the caller.

    Attributes:
        path: Managed path that was read.
        size: Size in bytes at stat time.
        media_type: Content type derived from the extension.
    """

    path: ManagedPath
    size: int
    media_type: str


def media_type_for(path: Path) -> str:
    """Guess a content type from the file extension."""
    media_type, _ = mimetypes.guess_type(path.name)
    return media_type or DEFAULT_MEDIA_TYPE


def _kind_from_stat(absolute: Path, follow_symlinks: bool = True) -> tuple[PathKind, int]:
    try:
        st = absolute.stat(follow_symlinks=follow_symlinks)
    except FileNotFoundError:
        return PathKind.MISSING, 0
    except NotADirectoryError:
        return PathKind.MISSING, 0
    if stat_module.S_ISDIR(st.st_mode):
        return PathKind.DIRECTORY, 0
    return PathKind.FILE, st.st_size


def _create_file(absolute: Path, body: bytes) -> None:
    absolute.parent.mkdir(parents=True, exist_ok=True)
    with absolute.open("xb") as fh:
        fh.write(body)


def _rewrite_file(absolute: Path, body: bytes) -> None:
    with absolute.open("wb") as fh:
        fh.write(body)


def _decode_body(body: bytes) -> str:
    return body.decode("utf-8", errors="replace")


class FilesystemExecutor:
    """Create, read, update and delete entries under the managed root.

    Every operation stats its target first and branches on what is on
    disk right now; the stat and the mutation are not atomic. Blocking
    disk work runs in worker threads so the event loop keeps serving
    other requests and watcher callbacks. A successful mutation publishes
    exactly one change event, after the disk operation has completed.

    Attributes:
        root: Resolved managed root.
    """

    def __init__(self, root: Path, event_bus: EventBus) -> None:
        """Initialize executor.

        Args:
            root: Managed root directory. Resolved on construction.
            event_bus: Bus that receives change events.
        """
        self._root = root.resolve()
        self._bus = event_bus

    @property
    def root(self) -> Path:
        """Resolved managed root."""
        return self._root

    def resolve(self, request_path: str) -> ManagedPath:
        """Resolve a request path against the managed root.

        Raises:
            InvalidPathError: If the path escapes the root.
        """
        return resolve_path(self._root, request_path)

    async def stat(self, path: ManagedPath, follow_symlinks: bool = True) -> ManagedPath:
        """Return the path tagged with what is on disk at call time.

        Args:
            path: Path to inspect.
            follow_symlinks: Classify a symlink by its target. When false a
                symlink, even one pointing at a directory, is a file.

        Returns:
            Copy of the path with its current kind.

        Raises:
            IOFailureError: If the stat fails for a reason other than
                the entry being absent.
        """
        try:
            kind, _ = await asyncio.to_thread(
                _kind_from_stat, path.absolute, follow_symlinks
            )
        except OSError as e:
            raise IOFailureError(f"Cannot stat path: {e}", path.relative) from e
        return path.with_kind(kind)

    async def read(self, path: ManagedPath) -> DirectoryListing | FileDescriptor:
        """Describe a file or list a directory.

        Args:
            path: Path to read.

        Returns:
            Directory listing, or file metadata for streaming.

        Raises:
            NotFoundError: If nothing exists at the path.
            IOFailureError: If the entry cannot be inspected or listed.
        """
        try:
            kind, size = await asyncio.to_thread(_kind_from_stat, path.absolute)
            if kind is PathKind.DIRECTORY:
                entries = sorted(await asyncio.to_thread(os.listdir, path.absolute))
        except OSError as e:
            raise IOFailureError(f"Cannot read path: {e}", path.relative) from e

        if kind is PathKind.MISSING:
            raise NotFoundError("Path does not exist", path.relative)

        path = path.with_kind(kind)
        if kind is PathKind.DIRECTORY:
            logger.debug("directory_listed", path=path.relative, entries=len(entries))
            return DirectoryListing(path=path, entries=entries)

        return FileDescriptor(path=path, size=size, media_type=media_type_for(path.absolute))

    async def archive(self, path: ManagedPath) -> IO[bytes]:
        """Package a directory subtree as a zip archive.

        Args:
            path: Directory to package.

        Returns:
            Open binary stream of the archive, positioned at its start.

        Raises:
            NotFoundError: If the path is not an existing directory.
            IOFailureError: If the archive cannot be built.
        """
        current = await self.stat(path)
        if current.kind is not PathKind.DIRECTORY:
            raise NotFoundError("Directory does not exist", path.relative)

        try:
            stream = await asyncio.to_thread(build_archive, path.absolute)
        except OSError as e:
            logger.error("archive_failed", path=path.relative, error=str(e))
            raise IOFailureError(f"Cannot build archive: {e}", path.relative) from e

        logger.info("archive_created", path=path.relative)
        return stream

    async def create(self, path: ManagedPath, body: bytes = b"") -> ChangeEvent:
        """Create a file or directory that must not already exist.

        Directory intent creates the directory and any missing parents.
        File intent creates missing parents, then the file exclusively,
        then writes the body.

        Args:
            path: Target path.
            body: File content; ignored for directories.

        Returns:
            The published change event.

        Raises:
            InvalidPathError: If the target is the managed root.
            AlreadyExistsError: If anything, a dangling symlink included,
                exists at the path, or a file sits where a parent directory
                is needed.
            IOFailureError: If the disk operation fails.
        """
        self._reject_root(path)
        current = await self.stat(path, follow_symlinks=False)
        if current.kind is not PathKind.MISSING:
            raise AlreadyExistsError("File or directory already exists", path.relative)

        try:
            if path.directory_intent:
                await asyncio.to_thread(path.absolute.mkdir, parents=True, exist_ok=True)
                event = change_for_operation(ChangeKind.CREATED, path, TargetKind.DIRECTORY)
                logger.info("directory_created", path=path.relative)
            else:
                await asyncio.to_thread(_create_file, path.absolute, body)
                event = change_for_operation(
                    ChangeKind.CREATED,
                    path,
                    TargetKind.FILE,
                    content=_decode_body(body),
                )
                logger.info("file_created", path=path.relative, size=len(body))
        except (FileExistsError, NotADirectoryError) as e:
            raise AlreadyExistsError("File or directory already exists", path.relative) from e
        except OSError as e:
            logger.error("create_failed", path=path.relative, error=str(e))
            raise IOFailureError(f"Cannot create path: {e}", path.relative) from e

        await self._publish(event)
        return event

    async def replace(self, path: ManagedPath, body: bytes = b"") -> ChangeEvent:
        """Truncate and rewrite an existing file.

        Args:
            path: Target file.
            body: New content.

        Returns:
            The published change event.

        Raises:
            InvalidPathError: If the target is the managed root.
            NotFoundError: If nothing exists at the path.
            IsDirectoryError: If the path is a directory.
            IOFailureError: If the write fails.
        """
        self._reject_root(path)
        current = await self.stat(path)
        if current.kind is PathKind.MISSING:
            raise NotFoundError("File does not exist", path.relative)
        if current.kind is PathKind.DIRECTORY:
            raise IsDirectoryError("Path is a directory", path.relative)

        try:
            await asyncio.to_thread(_rewrite_file, path.absolute, body)
        except OSError as e:
            logger.error("replace_failed", path=path.relative, error=str(e))
            raise IOFailureError(f"Cannot write file: {e}", path.relative) from e

        logger.info("file_updated", path=path.relative, size=len(body))
        event = change_for_operation(
            ChangeKind.UPDATED,
            current,
            TargetKind.FILE,
            content=_decode_body(body),
        )
        await self._publish(event)
        return event

    async def remove(self, path: ManagedPath) -> ChangeEvent:
        """Delete a file, or a directory with all of its descendants.

        A symlink is unlinked itself; its target is left untouched.

        Args:
            path: Target path.

        Returns:
            The published change event.

        Raises:
            InvalidPathError: If the target is the managed root.
            NotFoundError: If nothing exists at the path.
            IOFailureError: If any entry cannot be removed.
        """
        self._reject_root(path)
        current = await self.stat(path, follow_symlinks=False)
        if current.kind is PathKind.MISSING:
            raise NotFoundError("Path does not exist", path.relative)

        try:
            if current.kind is PathKind.DIRECTORY:
                removed = await asyncio.to_thread(remove_tree, path.absolute)
                target_kind = TargetKind.DIRECTORY
                logger.info("directory_deleted", path=path.relative, entries=removed)
            else:
                await asyncio.to_thread(path.absolute.unlink)
                target_kind = TargetKind.FILE
                logger.info("file_deleted", path=path.relative)
        except FileNotFoundError as e:
            raise NotFoundError("Path does not exist", path.relative) from e
        except OSError as e:
            logger.error("remove_failed", path=path.relative, error=str(e))
            raise IOFailureError(f"Cannot remove path: {e}", path.relative) from e

        event = change_for_operation(ChangeKind.DELETED, current, target_kind)
        await self._publish(event)
        return event

    def _reject_root(self, path: ManagedPath) -> None:
        if path.is_root:
            raise InvalidPathError("The managed root itself cannot be modified", path.relative)

    async def _publish(self, event: ChangeEvent) -> None:
        delivered = await self._bus.publish(event)
        logger.debug(
            "event_published",
            kind=event.kind.value,
            target_kind=event.target_kind.value,
            path=event.path,
            source=event.source.value,
            delivered_to=delivered,
        )
