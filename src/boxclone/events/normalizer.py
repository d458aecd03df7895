"""Event normalization for watcher observations and executor outcomes."""

import uuid
from datetime import UTC, datetime
from pathlib import Path

import structlog

from boxclone.events.types import (
    ChangeEvent,
    ChangeKind,
    ChangeSource,
    RawEvent,
    RawEventKind,
    TargetKind,
)
from boxclone.storage.paths import ManagedPath, to_relative

logger = structlog.get_logger()

RAW_KIND_MAP: dict[RawEventKind, tuple[ChangeKind, TargetKind]] = {
    RawEventKind.FILE_ADDED: (ChangeKind.CREATED, TargetKind.FILE),
    RawEventKind.FILE_CHANGED: (ChangeKind.UPDATED, TargetKind.FILE),
    RawEventKind.DIR_ADDED: (ChangeKind.CREATED, TargetKind.DIRECTORY),
    RawEventKind.FILE_REMOVED: (ChangeKind.DELETED, TargetKind.FILE),
    RawEventKind.DIR_REMOVED: (ChangeKind.DELETED, TargetKind.DIRECTORY),
}


def _new_event(
    kind: ChangeKind,
    target_kind: TargetKind,
    path: str,
    content: str | None,
    source: ChangeSource,
) -> ChangeEvent:
    if target_kind is TargetKind.DIRECTORY or kind is ChangeKind.DELETED:
        content = None
    return ChangeEvent(
        id=str(uuid.uuid4()),
        kind=kind,
        target_kind=target_kind,
        path=path,
        content=content,
        timestamp=datetime.now(UTC),
        source=source,
    )


def normalize_raw_event(raw_event: RawEvent, root: Path) -> ChangeEvent | None:
    """Transform a raw watcher observation into a canonical change event.

    Strips the managed root prefix and maps the raw kind onto the
    canonical kind and target kind. Content is carried as-is; an event
    whose content could not be read still normalizes, just without it.

    Args:
        raw_event: Observation from the filesystem watcher.
        root: Resolved managed root.

    Returns:
        Canonical change event, or None if the path lies outside the root.
    """
    try:
        relative = to_relative(root, Path(raw_event.path))
    except ValueError:
        logger.warning("event_outside_root", path=raw_event.path, root=str(root))
        return None

    kind, target_kind = RAW_KIND_MAP[raw_event.kind]
    return _new_event(kind, target_kind, relative, raw_event.content, ChangeSource.WATCHER)


def change_for_operation(
    kind: ChangeKind,
    path: ManagedPath,
    target_kind: TargetKind,
    content: str | None = None,
) -> ChangeEvent:
    """Build the change event for a completed executor operation.

    Args:
        kind: What the operation did.
        path: Managed path the operation targeted.
        target_kind: Whether a file or a directory was affected.
        content: Written file text for create/update of a file.

    Returns:
        Canonical change event.
    """
    return _new_event(kind, target_kind, path.relative, content, ChangeSource.REQUEST)
