"""Persistent TCP notification channel fanning change events out to clients."""

import asyncio
import contextlib
from collections.abc import AsyncIterator

import structlog

from boxclone.events.bus import EventBus, SubscriberLimitError
from boxclone.events.types import ChangeEvent
from boxclone.events.wire import DEFAULT_NAMESPACE, encode_envelope, verb_for

logger = structlog.get_logger()

READ_CHUNK = 4096


class NotificationChannel:
    """TCP server pushing one JSON envelope line per change event.

    Each connection gets its own bus subscription and delivery task, so
    a slow or broken subscriber never holds up the others. Anything a
    subscriber sends is read and discarded. A failed write drops only
    that subscriber.

    Attributes:
        host: Bind address.
        port: Bound port (the real one once started, even if 0 was asked).
        namespace: First element of every envelope label.
    """

    def __init__(
        self,
        event_bus: EventBus,
        host: str = "127.0.0.1",
        port: int = 6875,
        namespace: str = DEFAULT_NAMESPACE,
        write_timeout: float = 5.0,
    ) -> None:
        """Initialize notification channel.

        Args:
            event_bus: Bus to subscribe to per connection.
            host: Bind address.
            port: Bind port; 0 picks an ephemeral port.
            namespace: Envelope namespace.
            write_timeout: Seconds a subscriber may take to accept a write.
        """
        self._bus = event_bus
        self._host = host
        self._port = port
        self._namespace = namespace
        self._write_timeout = write_timeout
        self._server: asyncio.Server | None = None
        self._subscribers: dict[str, asyncio.StreamWriter] = {}
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def host(self) -> str:
        """Bind address."""
        return self._host

    @property
    def port(self) -> int:
        """Bound port once started, configured port before."""
        if self._server is not None and self._server.sockets:
            return self._server.sockets[0].getsockname()[1]
        return self._port

    @property
    def is_serving(self) -> bool:
        """Whether the server is accepting connections."""
        return self._server is not None and self._server.is_serving()

    @property
    def subscriber_count(self) -> int:
        """Number of connected subscribers."""
        return len(self._subscribers)

    async def start(self) -> None:
        """Start listening for subscriber connections."""
        self._server = await asyncio.start_server(
            self._handle_connection,
            host=self._host,
            port=self._port,
        )
        logger.info("notification_channel_started", host=self._host, port=self.port)

    async def stop(self) -> None:
        """Stop accepting connections and disconnect every subscriber."""
        if self._server is None:
            return

        self._server.close()
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        await self._server.wait_closed()
        self._server = None

        logger.info("notification_channel_stopped")

    async def _handle_connection(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
    ) -> None:
        peer = writer.get_extra_info("peername")
        try:
            subscriber_id, events = await self._bus.subscribe()
        except SubscriberLimitError:
            logger.warning("subscriber_rejected", peer=str(peer), reason="limit")
            writer.close()
            with contextlib.suppress(ConnectionError):
                await writer.wait_closed()
            return

        task = asyncio.current_task()
        if task is not None:
            self._tasks.add(task)
        self._subscribers[subscriber_id] = writer
        logger.info(
            "subscriber_connected",
            subscriber_id=subscriber_id,
            peer=str(peer),
            subscribers=self.subscriber_count,
        )

        inbound = asyncio.create_task(self._discard_inbound(reader))
        outbound = asyncio.create_task(self._deliver(subscriber_id, events, writer))

        try:
            await asyncio.wait({inbound, outbound}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for pending in (inbound, outbound):
                pending.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await pending
            await events.aclose()  # type: ignore[attr-defined]
            self._bus.unsubscribe(subscriber_id)
            self._subscribers.pop(subscriber_id, None)

            writer.close()
            with contextlib.suppress(ConnectionError):
                await writer.wait_closed()

            if task is not None:
                self._tasks.discard(task)
            logger.info(
                "subscriber_disconnected",
                subscriber_id=subscriber_id,
                subscribers=self.subscriber_count,
            )

    async def _discard_inbound(self, reader: asyncio.StreamReader) -> None:
        with contextlib.suppress(ConnectionError):
            while await reader.read(READ_CHUNK):
                pass

    async def _deliver(
        self,
        subscriber_id: str,
        events: AsyncIterator[ChangeEvent],
        writer: asyncio.StreamWriter,
    ) -> None:
        async for event in events:
            try:
                writer.write(encode_envelope(event, self._namespace))
                await asyncio.wait_for(writer.drain(), timeout=self._write_timeout)
            except (ConnectionError, TimeoutError) as e:
                logger.warning(
                    "subscriber_dropped",
                    subscriber_id=subscriber_id,
                    verb=verb_for(event),
                    path=event.path,
                    error=str(e) or type(e).__name__,
                )
                return
