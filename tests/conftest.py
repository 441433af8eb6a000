"""Shared test fixtures for the envtag test suite."""

import asyncio
import logging
from typing import Any, Callable

import pytest

from libenvtag import ManualDiscovery, RawReading, ReadingKind

import envtag_bridge.registry as registry_module

logging.getLogger("libenvtag").setLevel(logging.DEBUG)
logging.getLogger("envtag_bridge").setLevel(logging.DEBUG)


class RecordingSink:
    """Sink that keeps every delta it receives."""

    def __init__(self) -> None:
        self.messages: list[tuple[str, dict[str, Any]]] = []

    def handle_message(self, provider_id: str, delta: dict[str, Any]) -> None:
        self.messages.append((provider_id, delta))

    @property
    def deltas(self) -> list[dict[str, Any]]:
        return [delta for _, delta in self.messages]

    def values(self, index: int = -1) -> dict[str, Any]:
        """Path to value mapping of one received delta."""
        update = self.deltas[index]["updates"][0]
        return {v["path"]: v["value"] for v in update["values"]}


@pytest.fixture(autouse=True)
def fresh_registry(monkeypatch):
    """Every test starts without a process-wide registry."""
    monkeypatch.setattr(registry_module, "_registry", None)


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def discovery() -> ManualDiscovery:
    return ManualDiscovery()


@pytest.fixture
def make_reading() -> Callable[..., RawReading]:
    """Factory for raw readings with typical values."""

    def _make(**overrides: Any) -> RawReading:
        values: dict[str, Any] = {
            "humidity": 45.0,
            "pressure": 1013.0,
            "temperature": 21.0,
            "rssi": -70,
            "battery": 3000,
            "kind": ReadingKind.RAW,
        }
        values.update(overrides)
        return RawReading(**values)

    return _make


@pytest.fixture
def wait_until() -> Callable[..., Any]:
    """Poll a predicate inside the event loop until it holds."""

    async def _wait(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() > deadline:
                raise AssertionError("Condition not met before timeout")
            await asyncio.sleep(0.005)

    return _wait


@pytest.fixture
def settle() -> Callable[..., Any]:
    """Let pending tasks run a few loop iterations."""

    async def _settle(rounds: int = 10) -> None:
        for _ in range(rounds):
            await asyncio.sleep(0)

    return _settle
