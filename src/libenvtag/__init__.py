"""libenvtag - Environmental tag readings, configuration and discovery."""

from libenvtag.config import ConfigStore, TagConfig, TagEdit, default_config
from libenvtag.discovery import (
    DISCOVERY_BACKENDS,
    Discovery,
    DiscoverySettings,
    ManualDiscovery,
    ReplayDiscovery,
    SimulatedDiscovery,
    create_discovery,
)
from libenvtag.errors import ConfigError, DiscoveryUnavailableError, EnvTagError
from libenvtag.feed import FeedSubscription, ReadingFeed
from libenvtag.normalize import (
    DottedPathStrategy,
    IndoorOutdoorStrategy,
    LocationStrategy,
    get_strategy,
    normalize,
    policy_for_version,
    round_output,
)
from libenvtag.types import (
    DeltaEvent,
    DeltaUpdate,
    LocationPolicy,
    MeasurementRecord,
    PathValue,
    RawReading,
    ReadingKind,
    TaggedReading,
)

__version__ = "0.1.0"

__all__ = [
    # Types
    "DeltaEvent",
    "DeltaUpdate",
    "LocationPolicy",
    "MeasurementRecord",
    "PathValue",
    "RawReading",
    "ReadingKind",
    "TaggedReading",
    # Configuration
    "ConfigStore",
    "TagConfig",
    "TagEdit",
    "default_config",
    # Errors
    "ConfigError",
    "DiscoveryUnavailableError",
    "EnvTagError",
    # Feeds and discovery
    "DISCOVERY_BACKENDS",
    "Discovery",
    "DiscoverySettings",
    "FeedSubscription",
    "ManualDiscovery",
    "ReadingFeed",
    "ReplayDiscovery",
    "SimulatedDiscovery",
    "create_discovery",
    # Normalization
    "DottedPathStrategy",
    "IndoorOutdoorStrategy",
    "LocationStrategy",
    "get_strategy",
    "normalize",
    "policy_for_version",
    "round_output",
]
