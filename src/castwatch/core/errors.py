"""Error taxonomy shared by the core and adapters."""

from __future__ import annotations


class CastwatchError(Exception):
    """Base class for castwatch errors."""


class ConfigError(CastwatchError):
    """Configuration could not be loaded or validated. Fatal at startup."""


class SourceFetchError(CastwatchError):
    """A content or feed source was unreachable or returned malformed data."""

    def __init__(self, source_name: str, message: str) -> None:
        super().__init__(f"{source_name}: {message}")
        self.source_name = source_name


class DeliveryError(CastwatchError):
    """A notifier failed to deliver a message."""


class StoreError(CastwatchError):
    """A persistence read or write failed."""


class ConcurrentCycleError(CastwatchError):
    """A poll cycle was triggered while the previous one was still running."""
