"""Delta construction and emission to the host sink."""

import logging

from libenvtag import DeltaEvent, DeltaUpdate, MeasurementRecord, PathValue, round_output
from libenvtag.types import DEFAULT_PROVIDER_ID, DEFAULT_SOURCE_PREFIX

from envtag_bridge.sinks import MessageSink

logger = logging.getLogger(__name__)


def build_delta(record: MeasurementRecord, prefix: str = DEFAULT_SOURCE_PREFIX) -> DeltaEvent:
    """Build the delta for a normalized record.

    Quantities missing from the record are left out of the delta.
    """
    env = f"environment.{record.location}"
    fields = [
        (f"{env}.{record.humidity_key}", "humidity", record.humidity),
        (f"{env}.temperature", "temperature", record.temperature),
        (f"{env}.pressure", "pressure", record.pressure),
        (f"{env}.rssi", "rssi", record.rssi),
        (f"{env}.accelerationX", "acceleration", record.acceleration_x),
        (f"{env}.accelerationY", "acceleration", record.acceleration_y),
        (f"{env}.accelerationZ", "acceleration", record.acceleration_z),
        (f"electrical.batteries.{record.name}.voltage", "battery", record.battery),
    ]

    values = [
        PathValue(path=path, value=round_output(field, value))
        for path, field, value in fields
        if value is not None
    ]
    return DeltaEvent(updates=[DeltaUpdate(source=f"{prefix}.{record.name}", values=values)])


class EmissionFilter:
    """Forwards deltas of enabled tags to the sink."""

    def __init__(
        self,
        sink: MessageSink,
        provider_id: str = DEFAULT_PROVIDER_ID,
        prefix: str = DEFAULT_SOURCE_PREFIX,
    ):
        self.sink = sink
        self.provider_id = provider_id
        self.prefix = prefix
        self.emitted = 0
        self.dropped = 0
        self.sink_errors = 0

    def emit(self, record: MeasurementRecord) -> bool:
        """Send a record's delta if its tag is enabled.

        Returns True if the sink accepted the delta.
        """
        if not record.enabled:
            self.dropped += 1
            logger.debug(f"Tag {record.tag_id} disabled, dropping reading")
            return False

        delta = build_delta(record, self.prefix)
        try:
            self.sink.handle_message(self.provider_id, delta.to_dict())
        except Exception as e:
            self.sink_errors += 1
            logger.error(f"Sink rejected delta from {record.tag_id}: {e}")
            return False

        self.emitted += 1
        return True

    def stats(self) -> dict[str, int]:
        return {
            "emitted": self.emitted,
            "dropped": self.dropped,
            "sink_errors": self.sink_errors,
        }
