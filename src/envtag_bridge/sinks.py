"""Host message sinks."""

import json
import sys
from typing import Any, Callable, Protocol, TextIO


class MessageSink(Protocol):
    """Anything that accepts deltas from a provider."""

    def handle_message(self, provider_id: str, delta: dict[str, Any]) -> None:
        ...


class CallbackSink:
    """Passes deltas to a callable."""

    def __init__(self, callback: Callable[[str, dict[str, Any]], None]):
        self.callback = callback

    def handle_message(self, provider_id: str, delta: dict[str, Any]) -> None:
        self.callback(provider_id, delta)


class JsonLinesSink:
    """Writes one JSON document per delta to a stream."""

    def __init__(self, stream: TextIO | None = None, include_provider: bool = False):
        self.stream = stream or sys.stdout
        self.include_provider = include_provider

    def handle_message(self, provider_id: str, delta: dict[str, Any]) -> None:
        if self.include_provider:
            delta = {"provider": provider_id, **delta}
        self.stream.write(json.dumps(delta) + "\n")
        self.stream.flush()
