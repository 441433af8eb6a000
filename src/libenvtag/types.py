"""Common data types and enums for envtag."""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ReadingKind(str, Enum):
    """How a reading reached us.

    RAW readings come straight off the device's native format and report
    pressure in hPa. DERIVED readings come from a beacon advertisement and
    already report pressure in Pa.
    """

    RAW = "raw"
    DERIVED = "derived"


class LocationPolicy(str, Enum):
    """Strategies for turning a configured location into a path."""

    INDOOR_OUTDOOR = "indoor_outdoor"  # short instance name, blank = outside
    DOTTED_PATH = "dotted_path"        # fully qualified dotted path


class RawReading(BaseModel):
    """One raw sample as reported by a discovery backend."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    humidity: float | None = None  # %
    pressure: float | None = None  # hPa (raw) or Pa (derived)
    temperature: float | None = None  # °C
    acceleration_x: float | None = Field(default=None, alias="accelerationX")
    acceleration_y: float | None = Field(default=None, alias="accelerationY")
    acceleration_z: float | None = Field(default=None, alias="accelerationZ")
    rssi: float | None = None
    battery: float | None = None  # mV
    kind: ReadingKind = ReadingKind.RAW

    @classmethod
    def from_mapping(cls, data: dict[str, Any]) -> "RawReading":
        """Build a reading from a transport payload.

        Payloads without an explicit ``kind`` are classified by the presence
        of a beacon identifier, the way beacon-format listeners report them.
        """
        values = dict(data)
        if "kind" not in values:
            if "raw" in values:
                values["kind"] = ReadingKind.RAW if values["raw"] else ReadingKind.DERIVED
            elif values.get("eddystoneId"):
                values["kind"] = ReadingKind.DERIVED
        return cls.model_validate(values)


@dataclass(frozen=True)
class TaggedReading:
    """A raw reading tagged with the id of the tag that produced it."""

    tag_id: str
    reading: RawReading


@dataclass(frozen=True)
class MeasurementRecord:
    """A reading normalized to SI units and resolved to an output path."""

    tag_id: str
    name: str
    enabled: bool
    location: str
    humidity_key: str
    humidity: float | None = None  # fraction 0-1
    temperature: float | None = None  # K
    pressure: float | None = None  # Pa
    acceleration_x: float | None = None  # g
    acceleration_y: float | None = None
    acceleration_z: float | None = None
    rssi: float | None = None
    battery: float | None = None  # V


class PathValue(BaseModel):
    """A single path/value pair in a delta."""

    path: str
    value: float | int


class DeltaUpdate(BaseModel):
    """A batch of values from one source."""

    source: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    values: list[PathValue] = Field(default_factory=list)


class DeltaEvent(BaseModel):
    """The unit handed to the host sink."""

    updates: list[DeltaUpdate] = Field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Convert to the wire form expected by the host."""
        return self.model_dump(mode="json")


# Defaults
DEFAULT_PROVIDER_ID = "envtag"
DEFAULT_SOURCE_PREFIX = "envtag"
DEFAULT_NAME_LENGTH = 6
DEFAULT_INSIDE_LOCATION = "inside"
DEFAULT_DOTTED_LOCATION = "inside.mainCabin"

# Configuration limits
NAME_PATTERN = r"^[a-zA-Z0-9]+$"
NAME_MAX_LENGTH = 12
LOCATION_PATTERN = r"^[a-zA-Z0-9.]*$"
LOCATION_MAX_LENGTH = 40
