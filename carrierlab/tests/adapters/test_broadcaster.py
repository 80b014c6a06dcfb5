"""Tests for the in-process broadcaster."""

import asyncio

import pytest

from carrierlab.adapters.broadcast.memory import InMemoryBroadcaster
from carrierlab.core.models import TestEvent


def event(n: int) -> TestEvent:
    return TestEvent(type="speed_update", test_id="t", data={"sequence": n})


@pytest.mark.asyncio
async def test_every_subscriber_receives_events_in_order() -> None:
    broadcaster = InMemoryBroadcaster()
    first = broadcaster.subscribe()
    second = broadcaster.subscribe()

    for n in range(3):
        await broadcaster.publish(event(n))

    for queue in (first, second):
        received = [queue.get_nowait().data["sequence"] for _ in range(3)]
        assert received == [0, 1, 2]


@pytest.mark.asyncio
async def test_publish_without_subscribers_is_a_no_op() -> None:
    broadcaster = InMemoryBroadcaster()
    await broadcaster.publish(event(0))
    assert broadcaster.dropped_events == 0


@pytest.mark.asyncio
async def test_full_subscriber_drops_without_blocking_others() -> None:
    broadcaster = InMemoryBroadcaster(queue_size=1)
    slow = broadcaster.subscribe()
    fast = broadcaster.subscribe()

    await broadcaster.publish(event(0))
    fast.get_nowait()
    await broadcaster.publish(event(1))

    assert slow.qsize() == 1
    assert fast.get_nowait().data["sequence"] == 1
    assert broadcaster.dropped_events == 1


@pytest.mark.asyncio
async def test_unsubscribe_stops_delivery() -> None:
    broadcaster = InMemoryBroadcaster()
    queue = broadcaster.subscribe()
    broadcaster.unsubscribe(queue)
    broadcaster.unsubscribe(queue)

    await broadcaster.publish(event(0))

    assert queue.empty()
    assert broadcaster.subscriber_count == 0


@pytest.mark.asyncio
async def test_stream_yields_published_events() -> None:
    broadcaster = InMemoryBroadcaster()
    stream = broadcaster.stream()
    next_event = asyncio.ensure_future(stream.__anext__())
    await asyncio.sleep(0)

    await broadcaster.publish(event(7))
    received = await asyncio.wait_for(next_event, timeout=1)
    await stream.aclose()

    assert received.data["sequence"] == 7
    assert broadcaster.subscriber_count == 0


def test_queue_size_must_be_positive() -> None:
    with pytest.raises(ValueError):
        InMemoryBroadcaster(queue_size=0)
