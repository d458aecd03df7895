"""Bridge from the filesystem watcher to the bus, and from the bus to SSE."""

import json
from collections.abc import AsyncIterator
from datetime import UTC, datetime
from pathlib import Path

import structlog
from sse_starlette import ServerSentEvent

from boxclone.events.bus import EventBus, SubscriberLimitError
from boxclone.events.normalizer import normalize_raw_event
from boxclone.events.types import ChangeEvent, RawEvent
from boxclone.events.wire import verb_for, wire_payload

logger = structlog.get_logger()

HEARTBEAT_EVENT = "heartbeat"


def to_server_sent_event(event: ChangeEvent) -> ServerSentEvent:
    """Render a change as an SSE message named after its verb."""
    return ServerSentEvent(
        id=event.id,
        event=verb_for(event),
        data=json.dumps(wire_payload(event), separators=(",", ":")),
    )


class BroadcastHub:
    """Watcher-side producer and SSE-side consumer of the event bus.

    Attributes:
        heartbeat_interval: Seconds between heartbeat events on idle streams.
    """

    def __init__(
        self,
        event_bus: EventBus,
        root: Path,
        heartbeat_interval: float = 15.0,
    ) -> None:
        self._bus = event_bus
        self._root = root.resolve()
        self.heartbeat_interval = heartbeat_interval
        self._streams = 0

    @property
    def active_streams(self) -> int:
        """Number of open SSE streams."""
        return self._streams

    async def on_raw_event(self, raw_event: RawEvent) -> None:
        """Normalize a watcher observation and publish it.

        Args:
            raw_event: Raw watcher observation.
        """
        event = normalize_raw_event(raw_event, self._root)
        if event is None:
            return

        delivered = await self._bus.publish(event)
        logger.debug(
            "event_published",
            kind=event.kind.value,
            target_kind=event.target_kind.value,
            path=event.path,
            source=event.source.value,
            has_content=event.content is not None,
            delivered_to=delivered,
        )

    @staticmethod
    def heartbeat() -> ServerSentEvent:
        """Build the keep-alive message sent on idle streams."""
        now_ms = int(datetime.now(UTC).timestamp() * 1000)
        return ServerSentEvent(
            event=HEARTBEAT_EVENT,
            data=json.dumps({"type": HEARTBEAT_EVENT, "timestamp": now_ms}),
        )

    async def open_stream(self) -> AsyncIterator[ServerSentEvent]:
        """Return the SSE message stream for one client.

        Capacity is checked now, so a full bus is reported to the caller
        before the response starts. The subscription itself is taken when
        iteration begins and released when the stream closes; a stream
        that is never iterated holds nothing.

        Returns:
            Iterator of SSE messages.

        Raises:
            SubscriberLimitError: If the bus has no room for another subscriber.
        """
        if self._bus.is_full:
            raise SubscriberLimitError("Maximum subscribers reached")
        return self._relay()

    async def _relay(self) -> AsyncIterator[ServerSentEvent]:
        try:
            subscriber_id, events = await self._bus.subscribe()
        except SubscriberLimitError:
            # Filled up between the capacity check and the first read.
            logger.warning("sse_client_rejected", reason="limit")
            return

        self._streams += 1
        logger.info(
            "sse_client_connected",
            subscriber_id=subscriber_id,
            active_streams=self._streams,
        )
        try:
            async for event in events:
                yield to_server_sent_event(event)
        finally:
            await events.aclose()  # type: ignore[attr-defined]
            self._streams -= 1
            logger.info(
                "sse_client_disconnected",
                subscriber_id=subscriber_id,
                active_streams=self._streams,
            )

    async def shutdown(self) -> None:
        """Log final stream and drop counts."""
        logger.info(
            "broadcast_hub_shutdown",
            active_streams=self._streams,
            dropped_events=self._bus.dropped_events,
        )
