"""Wire representation of change events for notification subscribers."""
import json
from typing import Any

from boxclone.events.types import ChangeEvent, ChangeKind

DEFAULT_NAMESPACE = "box-clone"
CATEGORY = "clients"

VERBS: dict[ChangeKind, str] = {
    ChangeKind.CREATED: "put",
    ChangeKind.UPDATED: "post",
    ChangeKind.DELETED: "delete",
}


def verb_for(event: ChangeEvent) -> str:
    """Map a change kind to its wire verb (put, post or delete)."""
    return VERBS[event.kind]


def wire_payload(event: ChangeEvent) -> dict[str, Any]:
    """Build the JSON-serializable payload pushed to subscribers.

    ``bodyText`` is present only when the event carries file content.
    ``timestamp`` is in milliseconds since the epoch.

    Args:
        event: Change event to serialize.

    Returns:
        Payload dictionary.
    """
    verb = verb_for(event)
    payload: dict[str, Any] = {
        "type": verb,
        "filePath": event.path,
        "isPathDir": event.is_directory,
    }
    if event.content is not None:
        payload["bodyText"] = event.content
    payload["timestamp"] = int(event.timestamp.timestamp() * 1000)
    return payload


def envelope(event: ChangeEvent, namespace: str = DEFAULT_NAMESPACE) -> list[Any]:
    """Wrap an event in its labeled envelope.

    Args:
        event: Change event to wrap.
        namespace: First element of the envelope label.

    Returns:
        Two-element list of ``[namespace, "clients", verb]`` and the payload.
    """
    return [[namespace, CATEGORY, verb_for(event)], wire_payload(event)]


def encode_envelope(event: ChangeEvent, namespace: str = DEFAULT_NAMESPACE) -> bytes:
    """Encode an event as one newline-terminated JSON line."""
    return json.dumps(envelope(event, namespace), separators=(",", ":")).encode("utf-8") + b"\n"
