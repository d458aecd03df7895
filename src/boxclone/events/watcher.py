"""Async-friendly filesystem watcher with debouncing and initial scan."""

import asyncio
import threading
from collections.abc import Callable, Coroutine, Iterable
from concurrent.futures import Future
from pathlib import Path
from typing import Any

import structlog
from watchdog.events import (
    EVENT_TYPE_CREATED,
    EVENT_TYPE_DELETED,
    EVENT_TYPE_MODIFIED,
    EVENT_TYPE_MOVED,
    FileSystemEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer

from boxclone.events.types import RawEvent, RawEventKind
from boxclone.storage.paths import is_hidden
from boxclone.storage.walker import TreeEntry, iter_tree

logger = structlog.get_logger()

RawEventCallback = Callable[[RawEvent], Coroutine[Any, Any, None]]

WATCHDOG_KIND_MAP: dict[tuple[str, bool], RawEventKind] = {
    (EVENT_TYPE_CREATED, False): RawEventKind.FILE_ADDED,
    (EVENT_TYPE_MODIFIED, False): RawEventKind.FILE_CHANGED,
    (EVENT_TYPE_DELETED, False): RawEventKind.FILE_REMOVED,
    (EVENT_TYPE_CREATED, True): RawEventKind.DIR_ADDED,
    (EVENT_TYPE_DELETED, True): RawEventKind.DIR_REMOVED,
}

CONTENT_KINDS = frozenset({RawEventKind.FILE_ADDED, RawEventKind.FILE_CHANGED})


def _decode_path(src_path: str | bytes) -> str:
    if isinstance(src_path, str):
        return src_path
    return bytes(src_path).decode("utf-8", errors="replace")


def raw_changes_for(event: FileSystemEvent) -> list[tuple[RawEventKind, str]]:
    """Translate a watchdog event into raw change kinds and paths.

    A move becomes a removal of the source followed by an addition of
    the destination. Events with no raw counterpart (directory modified,
    opened, closed) translate to nothing.

    Args:
        event: Watchdog filesystem event.

    Returns:
        List of (raw kind, absolute path) pairs.
    """
    if event.event_type == EVENT_TYPE_MOVED:
        if event.is_directory:
            removed, added = RawEventKind.DIR_REMOVED, RawEventKind.DIR_ADDED
        else:
            removed, added = RawEventKind.FILE_REMOVED, RawEventKind.FILE_ADDED
        return [
            (removed, _decode_path(event.src_path)),
            (added, _decode_path(event.dest_path)),
        ]

    kind = WATCHDOG_KIND_MAP.get((event.event_type, event.is_directory))
    if kind is None:
        return []
    return [(kind, _decode_path(event.src_path))]


def supersedes(pending: RawEventKind, incoming: RawEventKind) -> bool:
    """Decide whether an incoming event replaces a pending one for a path.

    A pending addition absorbs later changes, so a file written right
    after creation is still reported as added. Anything else is replaced
    by the newer event.

    Args:
        pending: Kind waiting in the debounce window.
        incoming: Newly observed kind.

    Returns:
        True if the incoming kind should be emitted instead.
    """
    return not (pending is RawEventKind.FILE_ADDED and incoming is RawEventKind.FILE_CHANGED)


def read_text_content(path: str) -> str | None:
    """Read a file's full text, or None if it cannot be read as UTF-8."""
    try:
        return Path(path).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        logger.warning("watcher_content_unavailable", path=path, error=str(e))
        return None


class DebouncingHandler(FileSystemEventHandler):
    """Watchdog event handler with per-path time-based debouncing.

    Raw events are handed to an async callback on the event loop. File
    content is read when the debounced event fires, so it reflects the
    latest state of the file.

    Attributes:
        debounce_ms: Debounce window in milliseconds.
    """

    def __init__(
        self,
        root: Path,
        loop: asyncio.AbstractEventLoop,
        callback: RawEventCallback,
        debounce_ms: int = 50,
    ) -> None:
        """Initialize debouncing handler.

        Args:
            root: Resolved managed root; hidden entries below it are ignored.
            loop: Event loop for scheduling async callbacks.
            callback: Async function to call with raw events.
            debounce_ms: Debounce window in milliseconds.
        """
        super().__init__()
        self._root = root
        self._loop = loop
        self._callback = callback
        self._debounce_ms = debounce_ms
        self._pending: dict[str, tuple[threading.Timer, RawEventKind]] = {}
        self._lock = threading.Lock()
        self._coalesced_count = 0

    @property
    def coalesced_events(self) -> int:
        """Number of events coalesced by debouncing."""
        return self._coalesced_count

    def emit(self, kind: RawEventKind, path: str) -> None:
        """Read content if needed and hand the raw event to the loop.

        Does not wait for the callback; failures are logged when the
        scheduled coroutine finishes.

        Args:
            kind: Raw change kind.
            path: Absolute path of the entry.
        """
        content = read_text_content(path) if kind in CONTENT_KINDS else None
        raw_event = RawEvent(kind=kind, path=path, content=content)

        logger.debug("watcher_emit", path=path, kind=kind.value)
        try:
            future = asyncio.run_coroutine_threadsafe(self._callback(raw_event), self._loop)
        except RuntimeError as e:
            logger.error("watcher_loop_unavailable", error=str(e), path=path)
            return
        future.add_done_callback(self._log_failure)

    @staticmethod
    def _log_failure(future: Future[None]) -> None:
        if future.cancelled():
            return
        error = future.exception()
        if error is not None:
            logger.error("watcher_callback_error", error=str(error))

    def _emit_pending(self, path: str) -> None:
        with self._lock:
            entry = self._pending.pop(path, None)
            if entry is None:
                return
            _, kind = entry
        self.emit(kind, path)

    def schedule(self, kind: RawEventKind, path: str) -> None:
        """Queue a raw event for emission after the debounce window.

        Args:
            kind: Raw change kind.
            path: Absolute path of the entry.
        """
        with self._lock:
            existing = self._pending.get(path)
            if existing is not None:
                timer, pending_kind = existing
                timer.cancel()
                if not supersedes(pending_kind, kind):
                    kind = pending_kind
                self._coalesced_count += 1

            timer = threading.Timer(
                self._debounce_ms / 1000.0,
                self._emit_pending,
                args=(path,),
            )
            timer.daemon = True
            self._pending[path] = (timer, kind)
            timer.start()

    def on_any_event(self, event: FileSystemEvent) -> None:
        """Handle filesystem event with debouncing.

        Args:
            event: Raw watchdog filesystem event.
        """
        for kind, path in raw_changes_for(event):
            if is_hidden(self._root, Path(path)):
                continue
            self.schedule(kind, path)

    def replay(self, entries: Iterable[TreeEntry], stop: threading.Event) -> int:
        """Emit additions for pre-existing entries, in walk order.

        Args:
            entries: Entries to announce, parents before children.
            stop: Set to abandon the replay early.

        Returns:
            Number of entries announced.
        """
        count = 0
        for entry in entries:
            if stop.is_set():
                break
            kind = RawEventKind.DIR_ADDED if entry.is_dir else RawEventKind.FILE_ADDED
            self.emit(kind, str(entry.path))
            count += 1
        return count

    def cancel_all(self) -> None:
        """Cancel all pending timers during shutdown."""
        with self._lock:
            for timer, _ in self._pending.values():
                timer.cancel()
            self._pending.clear()


class FilesystemWatcher:
    """Restartable watcher for the managed root.

    Wraps a watchdog Observer and DebouncingHandler. Each start creates
    a fresh observer and, when ``initial_scan`` is enabled, announces
    every existing non-hidden entry as added, so consumers see the same
    events whether an entry predates the watch or not.

    Attributes:
        root: Directory being watched.
        debounce_ms: Debounce window in milliseconds.
    """

    def __init__(
        self,
        root: Path,
        loop: asyncio.AbstractEventLoop,
        on_event: RawEventCallback,
        debounce_ms: int = 50,
        initial_scan: bool = True,
    ) -> None:
        """Initialize filesystem watcher.

        Args:
            root: Directory to watch. Resolved on construction.
            loop: Event loop for async callbacks.
            on_event: Async callback for raw events.
            debounce_ms: Debounce window in milliseconds.
            initial_scan: Announce pre-existing entries on start.
        """
        self._root = root.resolve()
        self._debounce_ms = debounce_ms
        self._initial_scan = initial_scan
        self._handler = DebouncingHandler(self._root, loop, on_event, debounce_ms)
        self._observer: Observer | None = None  # pyright: ignore[reportInvalidTypeForm]
        self._scan_thread: threading.Thread | None = None
        self._stop_scan = threading.Event()

    @property
    def root(self) -> Path:
        """Directory being watched."""
        return self._root

    @property
    def is_running(self) -> bool:
        """Whether an observer is currently active."""
        return self._observer is not None

    @property
    def coalesced_events(self) -> int:
        """Number of events coalesced by debouncing."""
        return self._handler.coalesced_events

    def _scan(self) -> None:
        count = self._handler.replay(iter_tree(self._root, include_hidden=False), self._stop_scan)
        logger.info("watcher_initial_scan_complete", root=str(self._root), entries=count)

    def start(self) -> None:
        """Start the filesystem observer.

        Raises:
            ValueError: If the root does not exist or is not a directory.
            RuntimeError: If the watcher is already running.
        """
        if self._observer is not None:
            raise RuntimeError("Watcher already running")
        if not self._root.exists():
            raise ValueError(f"Watch path does not exist: {self._root}")
        if not self._root.is_dir():
            raise ValueError(f"Watch path is not a directory: {self._root}")

        observer = Observer()
        observer.schedule(self._handler, str(self._root), recursive=True)
        observer.start()
        self._observer = observer
        logger.info("watcher_started", root=str(self._root))

        if self._initial_scan:
            self._stop_scan.clear()
            self._scan_thread = threading.Thread(
                target=self._scan,
                name="watcher-initial-scan",
                daemon=True,
            )
            self._scan_thread.start()

    def stop(self) -> None:
        """Stop the filesystem observer. Safe to call when not running."""
        self._stop_scan.set()
        if self._scan_thread is not None:
            self._scan_thread.join(timeout=5.0)
            self._scan_thread = None

        self._handler.cancel_all()

        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=5.0)
            self._observer = None

        logger.info("watcher_stopped")
