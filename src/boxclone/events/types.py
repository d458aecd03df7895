"""Canonical and raw event types for change propagation."""
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class ChangeKind(str, Enum):
    """What happened to a path."""

    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"


class TargetKind(str, Enum):
    """What kind of entry a change applies to."""

    FILE = "file"
    DIRECTORY = "directory"


class ChangeSource(str, Enum):
    """Which producer observed a change."""

    REQUEST = "request"
    WATCHER = "watcher"


class RawEventKind(str, Enum):
    """Raw filesystem change kinds reported by the watcher."""

    FILE_ADDED = "file_added"
    FILE_CHANGED = "file_changed"
    DIR_ADDED = "dir_added"
    FILE_REMOVED = "file_removed"
    DIR_REMOVED = "dir_removed"


@dataclass(frozen=True)
class RawEvent:
    """Filesystem change as observed by the watcher.

    Attributes:
        kind: Raw change kind.
        path: Absolute path of the changed entry.
        content: File text read at observation time, if any.
    """

    kind: RawEventKind
    path: str
    content: str | None = None


class ChangeEvent(BaseModel):
    """Canonical, immutable notification of a change under the managed root.

    Attributes:
        id: Unique event identifier (UUID).
        kind: Created, updated or deleted.
        target_kind: File or directory.
        path: Root-relative path of the changed entry.
        content: File text for file create/update events.
        timestamp: Event creation time in UTC.
        source: Producer that emitted the event.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Unique event identifier (UUID)")
    kind: ChangeKind = Field(description="Change kind")
    target_kind: TargetKind = Field(description="Kind of the changed entry")
    path: str = Field(description="Root-relative path")
    content: str | None = Field(default=None, description="File text, when known")
    timestamp: datetime = Field(description="Event timestamp (UTC)")
    source: ChangeSource = Field(description="Producer of the event")

    @property
    def is_directory(self) -> bool:
        """Whether the change applies to a directory."""
        return self.target_kind is TargetKind.DIRECTORY
