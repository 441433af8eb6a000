"""Tests for the tag configuration store."""

import threading

import pytest

from libenvtag import ConfigError, ConfigStore, LocationPolicy, default_config


class TestDefaults:
    def test_default_entry_for_unseen_tag(self):
        store = ConfigStore(LocationPolicy.DOTTED_PATH)
        assert store.ensure_default("e3a1b2c4d5f6") is True

        config = store.get("e3a1b2c4d5f6")
        assert config.enabled is False
        assert config.name == "e3a1b2"
        assert config.location == "inside.mainCabin"

    def test_indoor_outdoor_default_location(self):
        config = default_config("AA:BB:CC", LocationPolicy.INDOOR_OUTDOOR)
        assert config.location == "inside"
        assert config.name == "AA:BB:"

    def test_short_id_keeps_whole_id_as_name(self):
        assert default_config("abc", LocationPolicy.DOTTED_PATH).name == "abc"

    def test_get_unknown_does_not_insert(self):
        store = ConfigStore()
        store.get("abcdef123456")
        assert "abcdef123456" not in store
        assert len(store) == 0


class TestEnsureDefault:
    def test_idempotent(self):
        store = ConfigStore()
        assert store.ensure_default("tag1") is True
        first = store.get("tag1")
        assert store.ensure_default("tag1") is False
        assert store.get("tag1") == first
        assert store.ids() == ["tag1"]

    def test_never_overwrites_user_edit(self):
        store = ConfigStore()
        store.set("tag1", {"name": "galley", "enabled": True})
        store.ensure_default("tag1")

        config = store.get("tag1")
        assert config.name == "galley"
        assert config.enabled is True

    def test_concurrent_inserts_create_one_entry(self):
        store = ConfigStore()
        results: list[bool] = []

        def seed() -> None:
            results.append(store.ensure_default("tag1"))

        threads = [threading.Thread(target=seed) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert results.count(True) == 1
        assert len(store) == 1


class TestSet:
    def test_partial_edit_keeps_other_fields(self):
        store = ConfigStore()
        store.ensure_default("e3a1b2c4d5f6")
        updated = store.set("e3a1b2c4d5f6", {"enabled": True})

        assert updated.enabled is True
        assert updated.name == "e3a1b2"
        assert updated.location == "inside.mainCabin"

    def test_snapshot_is_not_changed_by_later_edit(self):
        store = ConfigStore()
        store.ensure_default("tag1")
        before = store.get("tag1")
        store.set("tag1", {"location": "outside.flybridge"})

        assert before.location == "inside.mainCabin"
        assert store.get("tag1").location == "outside.flybridge"

    @pytest.mark.parametrize(
        "values",
        [
            {"name": ""},
            {"name": "waytoolongname"},
            {"name": "has space"},
            {"location": "inside/cabin"},
            {"location": "x" * 41},
            {"color": "red"},
        ],
    )
    def test_invalid_edit_raises(self, values):
        store = ConfigStore()
        with pytest.raises(ConfigError) as exc_info:
            store.set("tag1", values)
        assert exc_info.value.tag_id == "tag1"
        assert "tag1" not in store


class TestLoad:
    def test_load_mapping(self):
        store = ConfigStore.from_mapping(
            {"tag1": {"name": "salon", "location": "inside.salon", "enabled": True}},
        )
        config = store.get("tag1")
        assert config.name == "salon"
        assert config.location == "inside.salon"
        assert config.enabled is True

    def test_malformed_fields_fall_back_to_defaults(self, caplog):
        store = ConfigStore.from_mapping(
            {
                "e3a1b2c4d5f6": {
                    "name": "bad name!",
                    "enabled": "sometimes",
                    "location": ".mainCabin",
                }
            },
            LocationPolicy.INDOOR_OUTDOOR,
        )
        config = store.get("e3a1b2c4d5f6")
        assert config.name == "e3a1b2"
        assert config.enabled is False
        # Legacy leading period is kept here and stripped on normalization
        assert config.location == ".mainCabin"
        assert "Invalid name" in caplog.text

    def test_entry_that_is_not_a_mapping(self):
        store = ConfigStore.from_mapping({"tag1": "enabled"})
        assert store.get("tag1") == default_config("tag1", LocationPolicy.DOTTED_PATH)

    def test_persisted_default_name_loads_quietly(self, caplog):
        store = ConfigStore.from_mapping({"AA:BB:CC": {"name": "AA:BB:"}})
        assert store.get("AA:BB:CC").name == "AA:BB:"
        assert "Invalid" not in caplog.text

    def test_to_dict_round_trips_through_load(self):
        store = ConfigStore()
        store.ensure_default("tag1")
        store.set("tag2", {"name": "bow", "enabled": True})

        exported = store.to_dict()
        assert exported["tag2"] == {"name": "bow", "location": "inside.mainCabin", "enabled": True}
        assert ConfigStore.from_mapping(exported).to_dict() == exported
