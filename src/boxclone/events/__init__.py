"""Events subsystem for change propagation and subscriber notification."""
from boxclone.events.bus import EventBus, SubscriberLimitError
from boxclone.events.channel import NotificationChannel
from boxclone.events.hub import BroadcastHub
from boxclone.events.types import (
    ChangeEvent,
    ChangeKind,
    ChangeSource,
    RawEvent,
    RawEventKind,
    TargetKind,
)
from boxclone.events.watcher import FilesystemWatcher

__all__ = [
    "BroadcastHub",
    "ChangeEvent",
    "ChangeKind",
    "ChangeSource",
    "EventBus",
    "FilesystemWatcher",
    "NotificationChannel",
    "RawEvent",
    "RawEventKind",
    "SubscriberLimitError",
    "TargetKind",
]
