"""Tests for the tag registry and process-wide discovery state."""

import logging
import threading

import pytest

from libenvtag import (
    DiscoverySettings,
    DiscoveryUnavailableError,
    ManualDiscovery,
    ReadingFeed,
    create_discovery,
)

from envtag_bridge import TagRegistry, acquire_registry, get_registry, release_registry


class TestSnapshots:
    @pytest.mark.asyncio
    async def test_snapshots_accumulate_in_order(self, discovery):
        registry = TagRegistry(lambda: discovery)
        snapshots = []
        registry.subscribe(snapshots.append)
        await registry.start()

        discovery.announce("tag1")
        discovery.announce("tag2")

        assert [[s.id for s in snap] for snap in snapshots] == [["tag1"], ["tag1", "tag2"]]
        assert registry.ids == ["tag1", "tag2"]
        await registry.stop()

    @pytest.mark.asyncio
    async def test_duplicate_report_is_ignored(self, discovery):
        registry = TagRegistry(lambda: discovery)
        await registry.start()

        feed = discovery.announce("tag1")
        registry._on_found("tag1", feed)

        assert registry.ids == ["tag1"]
        assert registry.get("tag1").feed is feed
        await registry.stop()

    @pytest.mark.asyncio
    async def test_reports_from_many_threads(self):
        registry = TagRegistry(ManualDiscovery)
        await registry.start()
        snapshots = []
        registry.subscribe(snapshots.append)
        feed = ReadingFeed("shared")

        def report(index):
            registry._on_found(f"tag{index}", ReadingFeed(f"tag{index}"))
            registry._on_found("shared", feed)

        threads = [threading.Thread(target=report, args=(i,)) for i in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert sorted(registry.ids) == sorted([f"tag{i}" for i in range(8)] + ["shared"])
        assert [len(snap) for snap in snapshots] == list(range(1, 10))
        assert registry.get("shared").feed is feed
        await registry.stop()

    @pytest.mark.asyncio
    async def test_tags_announced_before_start_are_reported(self, discovery):
        discovery.announce("early")
        registry = TagRegistry(lambda: discovery)
        await registry.start()
        assert registry.ids == ["early"]
        await registry.stop()

    @pytest.mark.asyncio
    async def test_new_subscriber_gets_current_snapshot(self, discovery):
        registry = TagRegistry(lambda: discovery)
        await registry.start()
        discovery.announce("tag1")

        snapshots = []
        registry.subscribe(snapshots.append)
        assert [s.id for s in snapshots[0]] == ["tag1"]
        await registry.stop()

    @pytest.mark.asyncio
    async def test_unsubscribe(self, discovery):
        registry = TagRegistry(lambda: discovery)
        await registry.start()
        snapshots = []
        unsubscribe = registry.subscribe(snapshots.append)
        unsubscribe()
        unsubscribe()

        discovery.announce("tag1")
        assert snapshots == []
        await registry.stop()

    @pytest.mark.asyncio
    async def test_failing_listener_does_not_stop_others(self, discovery):
        registry = TagRegistry(lambda: discovery)
        await registry.start()

        def broken(snapshot):
            raise RuntimeError("boom")

        seen = []
        registry.subscribe(broken)
        registry.subscribe(seen.append)
        discovery.announce("tag1")

        assert len(seen) == 1
        await registry.stop()


class TestUnavailableDiscovery:
    @pytest.mark.asyncio
    async def test_unavailable_backend_leaves_registry_empty(self, caplog):
        def factory():
            raise DiscoveryUnavailableError("ble", "no adapter")

        registry = TagRegistry(factory)
        with caplog.at_level(logging.ERROR):
            await registry.start()
            await registry.start()

        assert registry.is_available is False
        assert registry.sources == ()
        errors = [r for r in caplog.records if r.levelno == logging.ERROR]
        assert len(errors) == 1
        assert "no adapter" in errors[0].getMessage()

        await registry.stop()
        await registry.stop()

    @pytest.mark.asyncio
    async def test_missing_capture_file(self, tmp_path):
        settings = DiscoverySettings(backend="replay", path=str(tmp_path / "missing.yaml"))
        registry = TagRegistry(lambda: create_discovery(settings))
        await registry.start()

        assert registry.is_available is False
        assert registry.discovery is None

    @pytest.mark.asyncio
    async def test_unexpected_error_also_fails_open(self):
        class BrokenDiscovery(ManualDiscovery):
            async def start(self, on_found):
                raise OSError("permission denied")

        registry = TagRegistry(BrokenDiscovery)
        await registry.start()
        assert registry.is_available is False


class TestProcessRegistry:
    @pytest.mark.asyncio
    async def test_discovery_initialized_once(self):
        created = []

        def factory():
            discovery = ManualDiscovery()
            created.append(discovery)
            return discovery

        first = await acquire_registry(factory)
        second = await acquire_registry(factory)

        assert first is second
        assert get_registry() is first
        assert len(created) == 1
        assert first.is_running

        await release_registry()
        assert get_registry() is None
        assert not first.is_running
        assert not created[0].is_running

    @pytest.mark.asyncio
    async def test_release_without_acquire(self):
        await release_registry()
        assert get_registry() is None
