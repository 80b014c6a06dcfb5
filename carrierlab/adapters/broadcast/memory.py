"""In-process pub/sub broadcaster.

Each subscriber gets its own bounded asyncio.Queue. Publishing never
waits: when a subscriber's queue is full the event is dropped for that
subscriber only.
"""

import asyncio
import logging
from collections.abc import AsyncIterator

from carrierlab.core.models import TestEvent
from carrierlab.core.ports import BroadcasterPort

logger = logging.getLogger(__name__)


class InMemoryBroadcaster(BroadcasterPort):
    """Fan-out of TestEvents to in-process subscriber queues."""

    def __init__(self, queue_size: int = 1000):
        if queue_size < 1:
            raise ValueError("queue_size must be at least 1")
        self._queue_size = queue_size
        self._subscribers: list[asyncio.Queue[TestEvent]] = []
        self.dropped_events = 0

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    async def publish(self, event: TestEvent) -> None:
        """Deliver to every subscriber without blocking."""
        for queue in list(self._subscribers):
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                self.dropped_events += 1
                logger.debug(f"Subscriber queue full, dropped {event.type} event")

    def subscribe(self) -> asyncio.Queue[TestEvent]:
        """Register a new subscriber and return its queue."""
        queue: asyncio.Queue[TestEvent] = asyncio.Queue(maxsize=self._queue_size)
        self._subscribers.append(queue)
        logger.debug(f"Subscriber added ({len(self._subscribers)} total)")
        return queue

    def unsubscribe(self, queue: asyncio.Queue[TestEvent]) -> None:
        if queue in self._subscribers:
            self._subscribers.remove(queue)
            logger.debug(f"Subscriber removed ({len(self._subscribers)} total)")

    async def stream(self) -> AsyncIterator[TestEvent]:
        """Yield events until the iterator is closed."""
        queue = self.subscribe()
        try:
            while True:
                yield await queue.get()
        finally:
            self.unsubscribe(queue)
