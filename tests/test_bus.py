"""Event bus fan-out tests."""

import asyncio

import pytest

from boxclone.events.bus import EventBus, SubscriberLimitError
from conftest import drain, make_event


@pytest.mark.asyncio
async def test_publish_without_subscribers_delivers_nothing() -> None:
    bus = EventBus()
    assert await bus.publish(make_event()) == 0


@pytest.mark.asyncio
async def test_every_subscriber_receives_events_in_order() -> None:
    """Fan-out reaches all subscribers and keeps producer order."""
    bus = EventBus()
    _, first = await bus.subscribe()
    _, second = await bus.subscribe()

    events = [make_event(path=f"/{i}.txt") for i in range(3)]
    for event in events:
        assert await bus.publish(event) == 2

    assert [e.path for e in await drain(first)] == ["/0.txt", "/1.txt", "/2.txt"]
    assert [e.path for e in await drain(second)] == ["/0.txt", "/1.txt", "/2.txt"]


@pytest.mark.asyncio
async def test_late_subscriber_gets_no_replay() -> None:
    """Events published before subscribing are never delivered."""
    bus = EventBus()
    await bus.publish(make_event(path="/before.txt"))

    _, events = await bus.subscribe()
    await bus.publish(make_event(path="/after.txt"))

    assert [e.path for e in await drain(events)] == ["/after.txt"]


@pytest.mark.asyncio
async def test_full_queue_drops_oldest() -> None:
    """A slow subscriber loses its oldest event instead of blocking publish."""
    bus = EventBus(queue_size=2)
    _, events = await bus.subscribe()

    for i in range(3):
        await bus.publish(make_event(path=f"/{i}.txt"))

    assert bus.dropped_events == 1
    assert [e.path for e in await drain(events)] == ["/1.txt", "/2.txt"]


@pytest.mark.asyncio
async def test_subscriber_limit() -> None:
    bus = EventBus(max_subscribers=1)
    await bus.subscribe()

    with pytest.raises(SubscriberLimitError):
        await bus.subscribe()


@pytest.mark.asyncio
async def test_closing_iterator_unsubscribes() -> None:
    """Closing a started iterator removes the subscriber from the bus."""
    bus = EventBus()
    _, events = await bus.subscribe()
    await bus.publish(make_event())
    await anext(events)

    await events.aclose()  # type: ignore[attr-defined]

    assert bus.subscriber_count == 0
    assert await bus.publish(make_event()) == 0


@pytest.mark.asyncio
async def test_unsubscribe_is_idempotent() -> None:
    bus = EventBus()
    subscriber_id, _ = await bus.subscribe()

    bus.unsubscribe(subscriber_id)
    bus.unsubscribe(subscriber_id)

    assert bus.subscriber_count == 0


@pytest.mark.asyncio
async def test_stalled_subscriber_does_not_block_others() -> None:
    """One subscriber never reading does not delay delivery to another."""
    bus = EventBus(queue_size=1)
    _, stalled = await bus.subscribe()
    _, active = await bus.subscribe()

    for i in range(5):
        await asyncio.wait_for(bus.publish(make_event(path=f"/{i}.txt")), 0.5)
        received = await asyncio.wait_for(anext(active), 0.5)
        assert received.path == f"/{i}.txt"

    assert [e.path for e in await drain(stalled)] == ["/4.txt"]
