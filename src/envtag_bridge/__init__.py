"""envtag-bridge - Discovery, merge and emission pipeline for environmental tags."""

from envtag_bridge.bridge import Bridge, BridgeSettings
from envtag_bridge.emitter import EmissionFilter, build_delta
from envtag_bridge.merger import TagMerger
from envtag_bridge.registry import (
    TagRegistry,
    TagSource,
    acquire_registry,
    get_registry,
    release_registry,
)
from envtag_bridge.sinks import CallbackSink, JsonLinesSink, MessageSink

__version__ = "0.1.0"

__all__ = [
    "Bridge",
    "BridgeSettings",
    "CallbackSink",
    "EmissionFilter",
    "JsonLinesSink",
    "MessageSink",
    "TagMerger",
    "TagRegistry",
    "TagSource",
    "acquire_registry",
    "build_delta",
    "get_registry",
    "release_registry",
]
