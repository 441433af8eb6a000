"""Per-tag reading feeds.

A feed is hot: readings published while nobody listens are lost. Each
subscriber gets its own buffered subscription, so a slow consumer never holds
up the others and never loses its place.
"""

import asyncio
import logging
import threading
from typing import Any

from libenvtag.types import RawReading

logger = logging.getLogger(__name__)


class FeedSubscription:
    """An ordered, buffered view of a feed bound to one event loop."""

    def __init__(self, feed: "ReadingFeed", loop: asyncio.AbstractEventLoop):
        self._feed = feed
        self._loop = loop
        self._queue: asyncio.Queue[RawReading | None] = asyncio.Queue()
        self._closed = False

    @property
    def tag_id(self) -> str:
        return self._feed.tag_id

    @property
    def is_closed(self) -> bool:
        return self._closed

    def _deliver(self, reading: RawReading | None) -> None:
        """Queue a reading, hopping onto the owning loop if needed."""
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if running is self._loop:
            self._queue.put_nowait(reading)
        elif not self._loop.is_closed():
            self._loop.call_soon_threadsafe(self._queue.put_nowait, reading)

    async def get(self) -> RawReading | None:
        """Wait for the next reading. Returns None once closed."""
        if self._closed and self._queue.empty():
            return None
        return await self._queue.get()

    def __aiter__(self) -> "FeedSubscription":
        return self

    async def __anext__(self) -> RawReading:
        reading = await self.get()
        if reading is None:
            raise StopAsyncIteration
        return reading

    def close(self) -> None:
        """Detach from the feed and end iteration."""
        if self._closed:
            return
        self._closed = True
        self._feed._remove(self)
        self._deliver(None)


class ReadingFeed:
    """Raw update feed of a single tag."""

    def __init__(self, tag_id: str):
        self.tag_id = tag_id
        self._subscriptions: list[FeedSubscription] = []
        self._lock = threading.Lock()
        self._published = 0

    @property
    def published(self) -> int:
        """Number of readings published so far."""
        return self._published

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscriptions)

    def subscribe(self, loop: asyncio.AbstractEventLoop | None = None) -> FeedSubscription:
        """Subscribe on behalf of an event loop.

        Without a loop argument this must be called inside the running loop.
        With one it may be called from any thread, and readings published from
        then on are buffered for that loop.
        """
        subscription = FeedSubscription(self, loop or asyncio.get_running_loop())
        with self._lock:
            self._subscriptions.append(subscription)
        return subscription

    def publish(self, reading: RawReading | dict[str, Any]) -> None:
        """Publish a reading to all current subscribers.

        Safe to call from any thread.
        """
        if not isinstance(reading, RawReading):
            reading = RawReading.from_mapping(reading)

        with self._lock:
            subscriptions = list(self._subscriptions)
            self._published += 1

        for subscription in subscriptions:
            subscription._deliver(reading)

    def close(self) -> None:
        """End all subscriptions."""
        with self._lock:
            subscriptions = list(self._subscriptions)
        for subscription in subscriptions:
            subscription.close()

    def _remove(self, subscription: FeedSubscription) -> None:
        with self._lock:
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)
