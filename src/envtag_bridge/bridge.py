"""The bridge plugin: discovery, configuration and emission wired together."""

import asyncio
import logging
from typing import Any, Callable

from pydantic import BaseModel, Field

from libenvtag import (
    ConfigStore,
    LocationPolicy,
    MeasurementRecord,
    TaggedReading,
    get_strategy,
    normalize,
    policy_for_version,
)
from libenvtag.types import (
    DEFAULT_NAME_LENGTH,
    DEFAULT_PROVIDER_ID,
    DEFAULT_SOURCE_PREFIX,
    LOCATION_MAX_LENGTH,
    LOCATION_PATTERN,
    NAME_MAX_LENGTH,
    NAME_PATTERN,
)

from envtag_bridge.emitter import EmissionFilter
from envtag_bridge.merger import TagMerger
from envtag_bridge.registry import DiscoveryFactory, Snapshot, TagRegistry, acquire_registry
from envtag_bridge.sinks import MessageSink

logger = logging.getLogger(__name__)

LOCATION_HELP = {
    LocationPolicy.INDOOR_OUTDOOR: (
        "environment.inside instance ID (e.g. 'mainCabin') - enter 'inside' for "
        "generic inside - leave blank for generic outside."
    ),
    LocationPolicy.DOTTED_PATH: (
        "Path below environment (e.g. 'inside.mainCabin' or 'outside.flybridge')."
    ),
}


class BridgeSettings(BaseModel):
    """Pipeline-wide settings."""

    config_version: int = Field(default=2, ge=1)
    location_policy: LocationPolicy | None = None
    convert_acceleration: bool = True
    source_prefix: str = DEFAULT_SOURCE_PREFIX
    provider_id: str = DEFAULT_PROVIDER_ID

    @property
    def policy(self) -> LocationPolicy:
        """The explicit policy, or the one implied by the config version."""
        if self.location_policy is not None:
            return self.location_policy
        return policy_for_version(self.config_version)


class Bridge:
    """Provides environment data from nearby wireless environmental tags.

    start() attaches to the process-wide tag registry, seeds default settings
    for every tag it reports, merges the tags' feeds and pushes normalized
    deltas of enabled tags to the sink. stop() detaches again; discovery
    itself keeps running until the registry is released.
    """

    id = "envtag"
    name = "Environmental Tag Bridge"
    description = "Provides environment data from nearby wireless environmental tags."

    def __init__(
        self,
        sink: MessageSink,
        discovery_factory: DiscoveryFactory,
        settings: BridgeSettings | None = None,
    ):
        self.settings = settings or BridgeSettings()
        self._discovery_factory = discovery_factory
        self._strategy = get_strategy(self.settings.policy)
        self._store = ConfigStore(self.settings.policy)
        self._emitter = EmissionFilter(
            sink,
            provider_id=self.settings.provider_id,
            prefix=self.settings.source_prefix,
        )

        self._registry: TagRegistry | None = None
        self._merger: TagMerger | None = None
        self._pipeline_task: asyncio.Task | None = None
        self._unsubscribes: list[Callable[[], None]] = []
        self._running = False

    @property
    def config_store(self) -> ConfigStore:
        return self._store

    @property
    def registry(self) -> TagRegistry | None:
        return self._registry

    @property
    def emitter(self) -> EmissionFilter:
        return self._emitter

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self, initial_config: dict[str, Any] | None = None) -> None:
        """Start the pipeline with a snapshot of the tag settings."""
        if self._running:
            logger.warning("Bridge already running, ignoring start")
            return

        logger.info(
            f"Starting bridge (policy={self.settings.policy.value}, "
            f"convert_acceleration={self.settings.convert_acceleration})"
        )
        self._store.load(dict(initial_config or {}))

        self._registry = await acquire_registry(self._discovery_factory)

        self._merger = TagMerger()
        self._merger.start()

        # Defaults must be seeded before the merger sees a new tag
        self._unsubscribes = [
            self._registry.subscribe(self._seed_defaults),
            self._registry.subscribe(self._merger.update),
        ]

        self._running = True
        self._pipeline_task = asyncio.create_task(self._pipeline())

        logger.info(f"Bridge started ({len(self._registry.sources)} tags known)")

    async def stop(self) -> None:
        """Release all subscriptions. Safe to call at any time."""
        for unsubscribe in self._unsubscribes:
            unsubscribe()
        self._unsubscribes = []

        if self._pipeline_task:
            self._pipeline_task.cancel()
            try:
                await self._pipeline_task
            except asyncio.CancelledError:
                pass
            self._pipeline_task = None

        if self._merger:
            await self._merger.stop()
            self._merger = None

        if self._running:
            self._running = False
            logger.info("Bridge stopped")

    def _seed_defaults(self, snapshot: Snapshot) -> None:
        for source in snapshot:
            self._store.ensure_default(source.id)

    async def _pipeline(self) -> None:
        """Normalize and emit merged readings until cancelled."""
        merger = self._merger
        if merger is None:
            return
        async for tagged in merger:
            try:
                self.process(tagged)
            except Exception as e:
                logger.error(f"Failed to process reading from {tagged.tag_id}: {e}")

    def process(self, tagged: TaggedReading) -> MeasurementRecord:
        """Normalize one reading against the tag's current settings and emit it."""
        config = self._store.get(tagged.tag_id)
        record = normalize(
            config,
            tagged.reading,
            strategy=self._strategy,
            convert_acceleration=self.settings.convert_acceleration,
        )
        self._emitter.emit(record)
        return record

    def schema(self) -> dict[str, Any]:
        """Describe the editable settings of every known tag."""
        location_help = LOCATION_HELP[self.settings.policy]
        properties = {}
        for tag_id in self._store.ids():
            properties[tag_id] = {
                "title": f"Tag {tag_id}",
                "type": "object",
                "properties": {
                    "enabled": {
                        "title": "Enabled. Receive data and emit values",
                        "type": "boolean",
                        "default": False,
                    },
                    "name": {
                        "title": "Source name",
                        "description": (
                            f"Length: 1-{NAME_MAX_LENGTH}, "
                            "Valid characters: (a-z, A-Z, 0-9)"
                        ),
                        "type": "string",
                        "minLength": 1,
                        "maxLength": NAME_MAX_LENGTH,
                        "pattern": NAME_PATTERN,
                        "default": tag_id[:DEFAULT_NAME_LENGTH],
                    },
                    "location": {
                        "title": "Location",
                        "description": (
                            f"{location_help} --- Length: 0-{LOCATION_MAX_LENGTH}, "
                            "Valid characters: (a-z, A-Z, 0-9, .)"
                        ),
                        "type": "string",
                        "maxLength": LOCATION_MAX_LENGTH,
                        "pattern": LOCATION_PATTERN,
                    },
                },
            }
        return {"title": "", "type": "object", "properties": properties}

    def status(self) -> dict[str, Any]:
        """Summarize the pipeline state."""
        return {
            "running": self._running,
            "policy": self.settings.policy.value,
            "tags_known": len(self._registry.sources) if self._registry else 0,
            "tags_configured": len(self._store),
            "tags_enabled": sum(
                1 for tag_id in self._store.ids() if self._store.get(tag_id).enabled
            ),
            "readings_discarded": self._merger.skipped if self._merger else 0,
            **self._emitter.stats(),
        }
