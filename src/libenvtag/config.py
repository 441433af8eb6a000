"""Per-tag configuration and the store that holds it."""

import logging
import threading
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from libenvtag.errors import ConfigError
from libenvtag.types import (
    DEFAULT_DOTTED_LOCATION,
    DEFAULT_INSIDE_LOCATION,
    DEFAULT_NAME_LENGTH,
    LOCATION_MAX_LENGTH,
    LOCATION_PATTERN,
    NAME_MAX_LENGTH,
    NAME_PATTERN,
    LocationPolicy,
)

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ("name", "location", "enabled")


class TagConfig(BaseModel):
    """User settings for one tag.

    Default names are cut from the tag id and may contain characters that
    user edits are not allowed to use, so only edits go through TagEdit.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    name: str = Field(min_length=1)
    location: str = ""
    enabled: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "location": self.location, "enabled": self.enabled}


class TagEdit(BaseModel):
    """A partial update coming from the configuration interface."""

    model_config = ConfigDict(extra="forbid")

    name: str | None = Field(
        default=None, min_length=1, max_length=NAME_MAX_LENGTH, pattern=NAME_PATTERN
    )
    location: str | None = Field(
        default=None, max_length=LOCATION_MAX_LENGTH, pattern=LOCATION_PATTERN
    )
    enabled: bool | None = None


def default_location(policy: LocationPolicy) -> str:
    """Get the location a newly seen tag starts with."""
    if policy == LocationPolicy.DOTTED_PATH:
        return DEFAULT_DOTTED_LOCATION
    return DEFAULT_INSIDE_LOCATION


def default_config(tag_id: str, policy: LocationPolicy) -> TagConfig:
    """Build the default entry for a tag."""
    return TagConfig(
        id=tag_id,
        name=tag_id[:DEFAULT_NAME_LENGTH],
        location=default_location(policy),
        enabled=False,
    )


class ConfigStore:
    """Thread-safe mapping of tag id to TagConfig.

    Entries are immutable, so a value returned by get() is a snapshot that
    later edits do not touch.
    """

    def __init__(self, policy: LocationPolicy = LocationPolicy.DOTTED_PATH):
        self._policy = policy
        self._configs: dict[str, TagConfig] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_mapping(
        cls,
        mapping: dict[str, Any] | None,
        policy: LocationPolicy = LocationPolicy.DOTTED_PATH,
    ) -> "ConfigStore":
        """Create a store seeded from a host-supplied mapping."""
        store = cls(policy)
        store.load(mapping or {})
        return store

    @property
    def policy(self) -> LocationPolicy:
        return self._policy

    def __contains__(self, tag_id: object) -> bool:
        with self._lock:
            return tag_id in self._configs

    def __len__(self) -> int:
        with self._lock:
            return len(self._configs)

    def ids(self) -> list[str]:
        """Get all configured tag ids."""
        with self._lock:
            return list(self._configs)

    def get(self, tag_id: str) -> TagConfig:
        """Get the settings for a tag, or its defaults if it has none yet."""
        with self._lock:
            config = self._configs.get(tag_id)
        if config is None:
            return default_config(tag_id, self._policy)
        return config

    def ensure_default(self, tag_id: str) -> bool:
        """Insert default settings for a tag unless it already has some.

        Returns True if an entry was inserted.
        """
        with self._lock:
            if tag_id in self._configs:
                return False
            self._configs[tag_id] = default_config(tag_id, self._policy)
        logger.info(f"Added default configuration for tag {tag_id}")
        return True

    def set(self, tag_id: str, values: dict[str, Any]) -> TagConfig:
        """Apply a partial edit to a tag's settings."""
        try:
            edit = TagEdit.model_validate(values)
        except ValidationError as e:
            raise ConfigError(tag_id, str(e)) from e

        changes = edit.model_dump(exclude_none=True)
        with self._lock:
            current = self._configs.get(tag_id) or default_config(tag_id, self._policy)
            updated = current.model_copy(update=changes)
            self._configs[tag_id] = updated
        logger.debug(f"Updated configuration for tag {tag_id}: {changes}")
        return updated

    def load(self, mapping: dict[str, Any]) -> None:
        """Replace all entries from a mapping of tag id to settings.

        Malformed fields fall back to their defaults.
        """
        configs: dict[str, TagConfig] = {}
        for tag_id, values in mapping.items():
            tag_id = str(tag_id)
            if not isinstance(values, dict):
                logger.warning(f"Ignoring settings for tag {tag_id}: expected a mapping")
                values = {}
            configs[tag_id] = self._parse_entry(tag_id, values)

        with self._lock:
            self._configs = configs

    def _parse_entry(self, tag_id: str, values: dict[str, Any]) -> TagConfig:
        config = default_config(tag_id, self._policy)
        changes: dict[str, Any] = {}
        for key in EDITABLE_FIELDS:
            if key not in values or values[key] is None:
                continue
            if values[key] == getattr(config, key):
                continue
            try:
                edit = TagEdit.model_validate({key: values[key]})
            except ValidationError:
                logger.warning(
                    f"Invalid {key} {values[key]!r} for tag {tag_id}, using default"
                )
                continue
            changes[key] = getattr(edit, key)
        return config.model_copy(update=changes)

    def to_dict(self) -> dict[str, dict[str, Any]]:
        """Export all entries for persistence."""
        with self._lock:
            return {tag_id: c.to_dict() for tag_id, c in self._configs.items()}
