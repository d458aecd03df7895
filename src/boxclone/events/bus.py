"""In-memory fan-out of change events to independent subscribers."""
import asyncio
import uuid
from collections.abc import AsyncIterator
from dataclasses import dataclass

import structlog

from boxclone.events.types import ChangeEvent

logger = structlog.get_logger()


class SubscriberLimitError(Exception):
    """Raised when the bus already serves its maximum subscriber count."""


@dataclass
class Subscription:
    """Delivery state of one subscriber."""

    id: str
    queue: asyncio.Queue[ChangeEvent]
    dropped: int = 0
    delivered: int = 0


class EventBus:
    """Fan-out bus shared by every producer and subscriber in the process.

    Producers are the executor (after a request mutation completes) and
    the watcher bridge. Each subscriber owns a bounded queue, so it sees
    events in publish order and independently of everyone else. When a
    queue is full its oldest event is discarded; publish never waits on
    a consumer. A subscription starts empty: nothing published earlier is
    replayed.

    All methods run on the event loop thread. Watcher threads reach the
    bus through ``asyncio.run_coroutine_threadsafe``.
    """

    def __init__(self, queue_size: int = 100, max_subscribers: int = 100) -> None:
        """Initialize event bus.

        Args:
            queue_size: Pending events kept per subscriber.
            max_subscribers: Concurrent subscriptions allowed.
        """
        self._subscriptions: dict[str, Subscription] = {}
        self._queue_size = queue_size
        self._max_subscribers = max_subscribers
        self._dropped = 0

    @property
    def subscriber_count(self) -> int:
        """Number of active subscribers."""
        return len(self._subscriptions)

    @property
    def is_full(self) -> bool:
        """Whether a new subscription would be refused."""
        return len(self._subscriptions) >= self._max_subscribers

    @property
    def dropped_events(self) -> int:
        """Events discarded across all subscribers because a queue was full."""
        return self._dropped

    async def publish(self, event: ChangeEvent) -> int:
        """Hand an event to every current subscriber.

        Args:
            event: Change event to deliver.

        Returns:
            Number of subscribers the event was queued for.
        """
        subscriptions = list(self._subscriptions.values())
        for subscription in subscriptions:
            if subscription.queue.full():
                subscription.queue.get_nowait()
                subscription.dropped += 1
                self._dropped += 1
                logger.warning(
                    "subscriber_queue_overflow",
                    subscriber_id=subscription.id,
                    dropped=subscription.dropped,
                )
            subscription.queue.put_nowait(event)
            subscription.delivered += 1
        return len(subscriptions)

    async def subscribe(self) -> tuple[str, AsyncIterator[ChangeEvent]]:
        """Open a subscription.

        The subscription is registered before this returns, so events
        published from then on are queued even if iteration has not
        started yet.

        Returns:
            Subscriber id and an iterator over its events. Closing the
            iterator ends the subscription.

        Raises:
            SubscriberLimitError: If ``max_subscribers`` are already active.
        """
        if self.is_full:
            raise SubscriberLimitError(
                f"Maximum subscribers reached ({self._max_subscribers})"
            )

        subscription = Subscription(
            id=str(uuid.uuid4()),
            queue=asyncio.Queue(maxsize=self._queue_size),
        )
        self._subscriptions[subscription.id] = subscription
        logger.debug("subscriber_added", subscriber_id=subscription.id)

        return subscription.id, self._iterate(subscription)

    async def _iterate(self, subscription: Subscription) -> AsyncIterator[ChangeEvent]:
        try:
            while True:
                yield await subscription.queue.get()
        finally:
            self.unsubscribe(subscription.id)

    def unsubscribe(self, subscriber_id: str) -> None:
        """End a subscription. Unknown or already removed ids are ignored."""
        subscription = self._subscriptions.pop(subscriber_id, None)
        if subscription is None:
            return
        logger.debug(
            "subscriber_removed",
            subscriber_id=subscriber_id,
            delivered=subscription.delivered,
            dropped=subscription.dropped,
        )
