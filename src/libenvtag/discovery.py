"""Tag discovery backends.

A backend reports every tag it finds exactly once through the ``on_found``
callback, handing over the tag's reading feed. What happens on the radio side
is the backend's business.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Callable

import numpy as np
import yaml
from pydantic import BaseModel, Field

from libenvtag.errors import DiscoveryUnavailableError
from libenvtag.feed import ReadingFeed
from libenvtag.types import RawReading, ReadingKind

logger = logging.getLogger(__name__)

# Callback type for discovery events
FoundCallback = Callable[[str, ReadingFeed], None]  # tag id, feed


class DiscoverySettings(BaseModel):
    """Configuration for the discovery backend."""

    backend: str = "simulated"
    tags: int = Field(default=3, ge=0)
    interval: float = Field(default=1.0, gt=0)
    announce_interval: float | None = Field(default=None, ge=0)
    seed: int | None = None
    path: str | None = None
    loop: bool = False


class Discovery(ABC):
    """Base class for discovery backends."""

    backend: str = "unknown"

    def __init__(self) -> None:
        self._on_found: FoundCallback | None = None
        self._feeds: dict[str, ReadingFeed] = {}

    @property
    def feeds(self) -> dict[str, ReadingFeed]:
        """Get the feeds of all tags found so far."""
        return dict(self._feeds)

    @property
    def is_running(self) -> bool:
        return self._on_found is not None

    def _report(self, tag_id: str) -> ReadingFeed:
        """Create the feed for a tag and report it if it is new."""
        feed = self._feeds.get(tag_id)
        if feed is not None:
            return feed

        feed = ReadingFeed(tag_id)
        self._feeds[tag_id] = feed
        logger.info(f"Discovered tag {tag_id} ({self.backend})")
        if self._on_found:
            self._on_found(tag_id, feed)
        return feed

    @abstractmethod
    async def start(self, on_found: FoundCallback) -> None:
        """Start discovering tags.

        Raises DiscoveryUnavailableError if the backend cannot run here.
        """
        ...

    @abstractmethod
    async def stop(self) -> None:
        """Stop discovering and release resources."""
        ...


class ManualDiscovery(Discovery):
    """Tags are announced by the embedding application."""

    backend = "manual"

    def __init__(self) -> None:
        super().__init__()
        self._pending: list[str] = []

    def announce(self, tag_id: str) -> ReadingFeed:
        """Announce a tag and get its feed."""
        if not self.is_running:
            feed = self._feeds.get(tag_id)
            if feed is None:
                feed = ReadingFeed(tag_id)
                self._feeds[tag_id] = feed
                self._pending.append(tag_id)
            return feed
        return self._report(tag_id)

    async def start(self, on_found: FoundCallback) -> None:
        self._on_found = on_found
        pending, self._pending = self._pending, []
        for tag_id in pending:
            logger.info(f"Discovered tag {tag_id} ({self.backend})")
            on_found(tag_id, self._feeds[tag_id])

    async def stop(self) -> None:
        self._on_found = None


class SimulatedDiscovery(Discovery):
    """Simulated tags drifting around typical cabin conditions.

    This is a mock backend for testing and demonstration. Tags are announced
    one at a time so the set of sources grows while the pipeline runs.
    """

    backend = "simulated"

    def __init__(
        self,
        tags: int = 3,
        interval: float = 1.0,
        announce_interval: float | None = None,
        seed: int | None = None,
    ):
        super().__init__()
        self.tag_count = tags
        self.interval = interval
        self.announce_interval = (
            announce_interval if announce_interval is not None else interval * 2
        )
        self._rng = np.random.default_rng(seed)
        self._tasks: list[asyncio.Task] = []

    def _make_id(self) -> str:
        octets = self._rng.integers(0, 256, size=6)
        return ":".join(f"{int(o):02X}" for o in octets)

    async def start(self, on_found: FoundCallback) -> None:
        if self.is_running:
            return
        self._on_found = on_found
        self._tasks.append(asyncio.create_task(self._announce_loop()))

    async def stop(self) -> None:
        self._on_found = None
        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks.clear()

    async def _announce_loop(self) -> None:
        for index in range(self.tag_count):
            if index:
                await asyncio.sleep(self.announce_interval)
            feed = self._report(self._make_id())
            self._tasks.append(asyncio.create_task(self._sample_loop(feed)))

    async def _sample_loop(self, feed: ReadingFeed) -> None:
        """Publish a random walk around a per-tag base climate."""
        temperature = 18.0 + 6.0 * self._rng.random()
        humidity = 40.0 + 20.0 * self._rng.random()
        pressure = 1013.0 + 5.0 * self._rng.standard_normal()
        battery = 2900.0 + 250.0 * self._rng.random()
        rssi = -90.0 + 40.0 * self._rng.random()

        while True:
            temperature += 0.05 * self._rng.standard_normal()
            humidity = float(np.clip(humidity + 0.2 * self._rng.standard_normal(), 0, 100))
            pressure += 0.1 * self._rng.standard_normal()
            battery = max(battery - 0.01, 1800.0)
            accel = self._rng.normal(0.0, 15.0, size=3) + np.array([0.0, 0.0, 1000.0])

            feed.publish(
                RawReading(
                    humidity=round(humidity, 2),
                    temperature=round(temperature, 2),
                    pressure=round(pressure, 2),
                    acceleration_x=round(float(accel[0])),
                    acceleration_y=round(float(accel[1])),
                    acceleration_z=round(float(accel[2])),
                    rssi=round(rssi + 3.0 * self._rng.standard_normal()),
                    battery=round(battery),
                    kind=ReadingKind.RAW,
                )
            )
            await asyncio.sleep(self.interval)


class ReplayDiscovery(Discovery):
    """Replays readings captured to a YAML file.

    The file holds a list of ``{id: ..., reading: {...}}`` entries, either at
    the top level or under a ``readings`` key. Tags are announced the first
    time they appear in the capture.
    """

    backend = "replay"

    def __init__(self, path: str | Path, interval: float = 1.0, loop: bool = False):
        super().__init__()
        self.path = Path(path)
        self.interval = interval
        self.loop = loop
        self._entries: list[tuple[str, dict[str, Any]]] = []
        self._task: asyncio.Task | None = None

    def _load(self) -> list[tuple[str, dict[str, Any]]]:
        if not self.path.exists():
            raise DiscoveryUnavailableError(self.backend, f"capture file not found: {self.path}")

        try:
            with open(self.path) as f:
                data = yaml.safe_load(f) or []
        except yaml.YAMLError as e:
            raise DiscoveryUnavailableError(self.backend, f"unreadable capture: {e}") from e

        if isinstance(data, dict):
            data = data.get("readings", [])
        if not isinstance(data, list):
            raise DiscoveryUnavailableError(self.backend, "capture must be a list of readings")

        entries = []
        for item in data:
            if not isinstance(item, dict) or "id" not in item:
                logger.warning(f"Skipping capture entry without id: {item!r}")
                continue
            entries.append((str(item["id"]), dict(item.get("reading") or {})))
        return entries

    async def start(self, on_found: FoundCallback) -> None:
        if self.is_running:
            return
        self._entries = self._load()
        self._on_found = on_found
        logger.info(f"Replaying {len(self._entries)} readings from {self.path}")
        self._task = asyncio.create_task(self._replay_loop())

    async def stop(self) -> None:
        self._on_found = None
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    async def _replay_loop(self) -> None:
        while True:
            for tag_id, values in self._entries:
                feed = self._report(tag_id)
                try:
                    feed.publish(values)
                except ValueError as e:
                    logger.warning(f"Skipping malformed reading for {tag_id}: {e}")
                await asyncio.sleep(self.interval)
            if not self.loop:
                break
        logger.info(f"Replay of {self.path} finished")


# Registry of available discovery backends
DISCOVERY_BACKENDS: dict[str, type[Discovery]] = {
    "manual": ManualDiscovery,
    "simulated": SimulatedDiscovery,
    "replay": ReplayDiscovery,
}


def create_discovery(settings: DiscoverySettings) -> Discovery:
    """Create the discovery backend named in the settings."""
    if settings.backend not in DISCOVERY_BACKENDS:
        raise DiscoveryUnavailableError(settings.backend, "unknown backend")

    if settings.backend == "simulated":
        return SimulatedDiscovery(
            tags=settings.tags,
            interval=settings.interval,
            announce_interval=settings.announce_interval,
            seed=settings.seed,
        )
    if settings.backend == "replay":
        if not settings.path:
            raise DiscoveryUnavailableError(settings.backend, "no capture path configured")
        return ReplayDiscovery(settings.path, interval=settings.interval, loop=settings.loop)
    return DISCOVERY_BACKENDS[settings.backend]()
