"""Fan-in of all known tag feeds into one stream."""

import asyncio
import logging
import threading

from libenvtag import FeedSubscription, TaggedReading

from envtag_bridge.registry import Snapshot

logger = logging.getLogger(__name__)


class TagMerger:
    """Merges the feeds of a growing set of tags.

    Each tag gets its own subscription and worker task feeding a shared
    queue. A new snapshot only adds workers for tags not yet served, so
    tags already flowing are never interrupted or replayed. The first
    reading of every subscription is discarded.
    """

    def __init__(self, skip_first: int = 1):
        self.skip_first = skip_first

        self._loop: asyncio.AbstractEventLoop | None = None
        self._output: asyncio.Queue[TaggedReading] = asyncio.Queue()
        self._subscriptions: dict[str, FeedSubscription] = {}
        self._workers: dict[str, asyncio.Task] = {}
        self._lock = threading.Lock()
        self._running = False
        self._forwarded = 0
        self._skipped = 0

    @property
    def tag_ids(self) -> list[str]:
        """Get the ids of tags being merged."""
        with self._lock:
            return list(self._subscriptions)

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def forwarded(self) -> int:
        return self._forwarded

    @property
    def skipped(self) -> int:
        return self._skipped

    def start(self) -> None:
        """Start accepting snapshots. Must be called inside the event loop."""
        if self._running:
            return
        self._loop = asyncio.get_running_loop()
        self._running = True

    def update(self, snapshot: Snapshot) -> None:
        """Include every tag of a snapshot in the merge.

        May be called from any thread. Subscriptions are made right away so
        readings published after this call are buffered even when the
        worker starts later on the loop.
        """
        added = []
        with self._lock:
            if not self._running or self._loop is None:
                return
            for source in snapshot:
                if source.id in self._subscriptions:
                    continue
                subscription = source.feed.subscribe(loop=self._loop)
                self._subscriptions[source.id] = subscription
                added.append((source.id, subscription))

        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        for tag_id, subscription in added:
            if running is self._loop:
                self._start_worker(tag_id, subscription)
            else:
                self._loop.call_soon_threadsafe(self._start_worker, tag_id, subscription)

    def _start_worker(self, tag_id: str, subscription: FeedSubscription) -> None:
        if not self._running or subscription.is_closed:
            return
        self._workers[tag_id] = asyncio.create_task(self._worker(tag_id, subscription))
        logger.debug(f"Merging feed of tag {tag_id} ({len(self._workers)} tags)")

    async def _worker(self, tag_id: str, subscription: FeedSubscription) -> None:
        skipped = 0
        async for reading in subscription:
            if skipped < self.skip_first:
                skipped += 1
                self._skipped += 1
                logger.debug(f"Discarding initial reading from {tag_id}")
                continue
            self._forwarded += 1
            self._output.put_nowait(TaggedReading(tag_id=tag_id, reading=reading))

    async def get(self) -> TaggedReading:
        """Wait for the next merged reading."""
        return await self._output.get()

    def __aiter__(self) -> "TagMerger":
        return self

    async def __anext__(self) -> TaggedReading:
        return await self.get()

    async def stop(self) -> None:
        """Cancel all workers and release their subscriptions."""
        with self._lock:
            self._running = False
            subscriptions = list(self._subscriptions.values())
            self._subscriptions.clear()
        for subscription in subscriptions:
            subscription.close()

        workers = list(self._workers.values())
        self._workers.clear()
        for task in workers:
            task.cancel()
        for task in workers:
            try:
                await task
            except asyncio.CancelledError:
                pass
