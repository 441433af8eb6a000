"""Registry of discovered tags and process-wide discovery state."""

import logging
import threading
from dataclasses import dataclass
from typing import Callable

from libenvtag import Discovery, DiscoveryUnavailableError, ReadingFeed

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TagSource:
    """A discovered tag and its raw update feed."""

    id: str
    feed: ReadingFeed


Snapshot = tuple[TagSource, ...]
SnapshotListener = Callable[[Snapshot], None]
DiscoveryFactory = Callable[[], Discovery]


class TagRegistry:
    """Accumulates discovered tags into ordered snapshots.

    Every discovery report produces a new snapshot equal to the previous one
    plus the new tag. Tags are never removed and each id appears once.
    Listeners always receive whole snapshots.
    """

    def __init__(self, discovery_factory: DiscoveryFactory):
        self._discovery_factory = discovery_factory
        self._discovery: Discovery | None = None
        self._snapshot: Snapshot = ()
        self._listeners: list[SnapshotListener] = []
        self._lock = threading.RLock()
        self._started = False
        self._available = True

    @property
    def sources(self) -> Snapshot:
        """Get the current snapshot of known tags."""
        return self._snapshot

    @property
    def ids(self) -> list[str]:
        return [source.id for source in self._snapshot]

    @property
    def discovery(self) -> Discovery | None:
        return self._discovery

    @property
    def is_available(self) -> bool:
        """False once discovery failed to initialize."""
        return self._available

    @property
    def is_running(self) -> bool:
        return self._started

    def get(self, tag_id: str) -> TagSource | None:
        """Find a known tag by id."""
        for source in self._snapshot:
            if source.id == tag_id:
                return source
        return None

    def subscribe(self, listener: SnapshotListener) -> Callable[[], None]:
        """Register a snapshot listener.

        The listener is called right away with the current snapshot if any
        tags are known. Returns a function that removes the listener.
        """
        with self._lock:
            self._listeners.append(listener)
            if self._snapshot:
                listener(self._snapshot)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def _on_found(self, tag_id: str, feed: ReadingFeed) -> None:
        """Handle a discovery report."""
        if not tag_id:
            logger.warning("Ignoring tag reported without an id")
            return
        # Listeners run under the lock so every one sees snapshots in order
        with self._lock:
            if self.get(tag_id) is not None:
                logger.debug(f"Tag {tag_id} already known, ignoring report")
                return

            self._snapshot = self._snapshot + (TagSource(id=tag_id, feed=feed),)
            logger.info(f"Tag added: {tag_id} ({len(self._snapshot)} known)")

            for listener in list(self._listeners):
                try:
                    listener(self._snapshot)
                except Exception as e:
                    logger.error(f"Snapshot listener error: {e}")

    async def start(self) -> None:
        """Start discovery. Never raises; an unusable backend leaves the
        registry permanently empty."""
        if self._started:
            return
        self._started = True

        try:
            self._discovery = self._discovery_factory()
            await self._discovery.start(self._on_found)
        except DiscoveryUnavailableError as e:
            self._fail(str(e))
        except Exception as e:
            self._fail(f"Error initializing discovery: {e}")

    def _fail(self, message: str) -> None:
        self._available = False
        self._discovery = None
        logger.error(f"{message}; no tags will be reported")

    async def stop(self) -> None:
        """Stop discovery and drop all listeners."""
        if not self._started:
            return
        self._started = False
        with self._lock:
            self._listeners.clear()

        if self._discovery is not None:
            await self._discovery.stop()


# Process-wide registry, initialized at most once
_registry: TagRegistry | None = None


def get_registry() -> TagRegistry | None:
    """Get the process-wide registry if one was acquired."""
    return _registry


async def acquire_registry(factory: DiscoveryFactory) -> TagRegistry:
    """Get the process-wide registry, creating and starting it on first use.

    Later calls return the same registry and ignore the factory.
    """
    global _registry

    if _registry is None:
        _registry = TagRegistry(factory)
        await _registry.start()
    return _registry


async def release_registry() -> None:
    """Tear down the process-wide registry and its discovery backend."""
    global _registry

    if _registry is not None:
        registry, _registry = _registry, None
        await registry.stop()
