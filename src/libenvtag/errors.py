"""Exceptions for envtag libraries."""


class EnvTagError(Exception):
    """Base exception for envtag errors."""
    pass


class DiscoveryUnavailableError(EnvTagError):
    """The discovery backend cannot be initialized on this host."""

    def __init__(self, backend: str, reason: str = ""):
        self.backend = backend
        self.reason = reason
        if reason:
            super().__init__(f"Discovery backend '{backend}' unavailable: {reason}")
        else:
            super().__init__(f"Discovery backend '{backend}' unavailable")


class ConfigError(EnvTagError):
    """Invalid tag configuration."""

    def __init__(self, tag_id: str, message: str):
        self.tag_id = tag_id
        self.message = message
        super().__init__(f"Tag '{tag_id}': {message}")
