"""Normalization and wire-format tests."""

import json
from pathlib import Path

import pytest

from boxclone.events.normalizer import change_for_operation, normalize_raw_event
from boxclone.events.types import ChangeKind, ChangeSource, RawEvent, RawEventKind, TargetKind
from boxclone.events.wire import encode_envelope, envelope, wire_payload
from boxclone.storage.paths import resolve_path


@pytest.mark.parametrize(
    ("raw_kind", "kind", "target_kind"),
    [
        (RawEventKind.FILE_ADDED, ChangeKind.CREATED, TargetKind.FILE),
        (RawEventKind.FILE_CHANGED, ChangeKind.UPDATED, TargetKind.FILE),
        (RawEventKind.DIR_ADDED, ChangeKind.CREATED, TargetKind.DIRECTORY),
        (RawEventKind.FILE_REMOVED, ChangeKind.DELETED, TargetKind.FILE),
        (RawEventKind.DIR_REMOVED, ChangeKind.DELETED, TargetKind.DIRECTORY),
    ],
)
def test_raw_kinds_map_to_canonical_kinds(
    root: Path,
    raw_kind: RawEventKind,
    kind: ChangeKind,
    target_kind: TargetKind,
) -> None:
    raw = RawEvent(kind=raw_kind, path=str(root / "docs" / "entry"))

    event = normalize_raw_event(raw, root)

    assert event is not None
    assert event.kind is kind
    assert event.target_kind is target_kind
    assert event.path == "/docs/entry"
    assert event.source is ChangeSource.WATCHER


def test_file_content_is_carried(root: Path) -> None:
    raw = RawEvent(kind=RawEventKind.FILE_CHANGED, path=str(root / "a.txt"), content="hello")

    event = normalize_raw_event(raw, root)

    assert event is not None
    assert event.content == "hello"


def test_unreadable_content_still_normalizes(root: Path) -> None:
    """A file whose content could not be read is published without it."""
    raw = RawEvent(kind=RawEventKind.FILE_ADDED, path=str(root / "gone.txt"), content=None)

    event = normalize_raw_event(raw, root)

    assert event is not None
    assert event.content is None


def test_path_outside_root_is_dropped(root: Path, tmp_path: Path) -> None:
    raw = RawEvent(kind=RawEventKind.FILE_ADDED, path=str(tmp_path / "elsewhere.txt"))
    assert normalize_raw_event(raw, root) is None


def test_events_are_immutable(root: Path) -> None:
    event = change_for_operation(ChangeKind.CREATED, resolve_path(root, "a.txt"), TargetKind.FILE, "x")
    with pytest.raises(Exception):
        event.path = "/b.txt"  # type: ignore[misc]


def test_operation_events_are_request_sourced(root: Path) -> None:
    path = resolve_path(root, "docs/")
    event = change_for_operation(ChangeKind.CREATED, path, TargetKind.DIRECTORY, "ignored")

    assert event.source is ChangeSource.REQUEST
    assert event.path == "/docs"
    assert event.content is None


def test_watcher_and_request_events_share_shape(root: Path) -> None:
    """The same change produces the same payload whichever producer saw it."""
    from_request = change_for_operation(
        ChangeKind.CREATED,
        resolve_path(root, "notes/today.md"),
        TargetKind.FILE,
        "# today",
    )
    from_watcher = normalize_raw_event(
        RawEvent(kind=RawEventKind.FILE_ADDED, path=str(root / "notes" / "today.md"), content="# today"),
        root,
    )

    assert from_watcher is not None
    request_payload = wire_payload(from_request)
    watcher_payload = wire_payload(from_watcher)
    request_payload.pop("timestamp")
    watcher_payload.pop("timestamp")
    assert request_payload == watcher_payload


def test_wire_payload_fields(root: Path) -> None:
    event = change_for_operation(ChangeKind.UPDATED, resolve_path(root, "a.txt"), TargetKind.FILE, "v2")

    payload = wire_payload(event)

    assert payload["type"] == "post"
    assert payload["filePath"] == "/a.txt"
    assert payload["isPathDir"] is False
    assert payload["bodyText"] == "v2"
    assert payload["timestamp"] == int(event.timestamp.timestamp() * 1000)


def test_wire_payload_omits_body_without_content(root: Path) -> None:
    event = change_for_operation(ChangeKind.DELETED, resolve_path(root, "d"), TargetKind.DIRECTORY)

    payload = wire_payload(event)

    assert payload["type"] == "delete"
    assert payload["isPathDir"] is True
    assert "bodyText" not in payload


def test_envelope_is_labeled_and_line_framed(root: Path) -> None:
    event = change_for_operation(ChangeKind.CREATED, resolve_path(root, "a.txt"), TargetKind.FILE, "x")

    assert envelope(event)[0] == ["box-clone", "clients", "put"]

    line = encode_envelope(event, namespace="mirror")
    assert line.endswith(b"\n")
    assert line.count(b"\n") == 1
    label, payload = json.loads(line)
    assert label == ["mirror", "clients", "put"]
    assert payload["filePath"] == "/a.txt"
