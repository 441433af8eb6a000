"""Unit conversion and path resolution for raw tag readings.

Everything in this module is pure: the same settings and reading always give
the same record, so readings can be normalized again at any time.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass

from libenvtag.config import TagConfig
from libenvtag.types import (
    DEFAULT_DOTTED_LOCATION,
    LocationPolicy,
    MeasurementRecord,
    RawReading,
    ReadingKind,
)

KELVIN_OFFSET = 273.15

HUMIDITY_KEY_OUTSIDE = "humidity"
HUMIDITY_KEY_INSIDE = "relativeHumidity"

# Decimal places used when values leave the pipeline (None = integer)
OUTPUT_PRECISION: dict[str, int | None] = {
    "humidity": 3,
    "temperature": 2,
    "pressure": None,
    "rssi": None,
    "battery": 3,
    "acceleration": 3,
}


@dataclass(frozen=True)
class ResolvedLocation:
    """Output path prefix and humidity key for a configured location."""

    path: str
    humidity_key: str


class LocationStrategy(ABC):
    """Turns a configured location into an environment path."""

    policy: LocationPolicy

    @abstractmethod
    def resolve(self, location: str) -> ResolvedLocation:
        """Resolve a configured location string."""
        ...


class IndoorOutdoorStrategy(LocationStrategy):
    """Location is a short instance name under ``inside``.

    Blank means outside. The word ``inside`` means the generic inside path.
    """

    policy = LocationPolicy.INDOOR_OUTDOOR

    def resolve(self, location: str) -> ResolvedLocation:
        instance = (location or "").strip().lstrip(".")
        if not instance:
            return ResolvedLocation("outside", HUMIDITY_KEY_OUTSIDE)
        if instance.lower() == "inside":
            return ResolvedLocation("inside", HUMIDITY_KEY_INSIDE)
        return ResolvedLocation(f"inside.{instance}", HUMIDITY_KEY_INSIDE)


class DottedPathStrategy(LocationStrategy):
    """Location is already a full dotted path such as ``outside.flybridge``."""

    policy = LocationPolicy.DOTTED_PATH

    def __init__(self, default: str = DEFAULT_DOTTED_LOCATION):
        self.default = default

    def resolve(self, location: str) -> ResolvedLocation:
        path = (location or "").strip().lstrip(".") or self.default
        if path == "outside" or path.startswith("outside."):
            return ResolvedLocation(path, HUMIDITY_KEY_OUTSIDE)
        return ResolvedLocation(path, HUMIDITY_KEY_INSIDE)


LOCATION_STRATEGIES: dict[LocationPolicy, type[LocationStrategy]] = {
    LocationPolicy.INDOOR_OUTDOOR: IndoorOutdoorStrategy,
    LocationPolicy.DOTTED_PATH: DottedPathStrategy,
}


def policy_for_version(config_version: int) -> LocationPolicy:
    """Get the location policy a configuration version was written for.

    Version 1 configurations stored short instance names; later versions
    store full dotted paths.
    """
    if config_version <= 1:
        return LocationPolicy.INDOOR_OUTDOOR
    return LocationPolicy.DOTTED_PATH


def get_strategy(policy: LocationPolicy | str) -> LocationStrategy:
    """Create the strategy for a policy."""
    return LOCATION_STRATEGIES[LocationPolicy(policy)]()


def _divided(value: float | None, divisor: float) -> float | None:
    if value is None:
        return None
    return value / divisor


def normalize(
    config: TagConfig,
    reading: RawReading,
    strategy: LocationStrategy | None = None,
    convert_acceleration: bool = True,
) -> MeasurementRecord:
    """Convert a raw reading to SI units and attach its output path.

    Pressure is only converted from hPa for RAW readings; DERIVED readings
    already carry Pa.
    """
    strategy = strategy or DottedPathStrategy()
    resolved = strategy.resolve(config.location)

    temperature = None
    if reading.temperature is not None:
        temperature = reading.temperature + KELVIN_OFFSET

    pressure = reading.pressure
    if pressure is not None and reading.kind == ReadingKind.RAW:
        pressure = pressure * 100

    accel_divisor = 1000 if convert_acceleration else 1

    return MeasurementRecord(
        tag_id=config.id,
        name=config.name,
        enabled=config.enabled,
        location=resolved.path,
        humidity_key=resolved.humidity_key,
        humidity=_divided(reading.humidity, 100),
        temperature=temperature,
        pressure=pressure,
        acceleration_x=_divided(reading.acceleration_x, accel_divisor),
        acceleration_y=_divided(reading.acceleration_y, accel_divisor),
        acceleration_z=_divided(reading.acceleration_z, accel_divisor),
        rssi=reading.rssi,
        battery=_divided(reading.battery, 1000),
    )


def round_output(field: str, value: float) -> float | int:
    """Round a value for output using the precision of its field."""
    precision = OUTPUT_PRECISION[field]
    if precision is None:
        return int(round(value))
    return round(value, precision)
