from __future__ import annotations

import abc
from typing import Optional


class SettingsBackend(abc.ABC):
    """Durable string key/value storage behind the SettingsStore.

    Implementations must give identical get/set/delete/clear/keys semantics
    and survive process restarts. ``flush`` makes every prior write durable.
    """

    backend: str = "unknown"

    @abc.abstractmethod
    def open(self) -> None:
        """Open the underlying handle. Called once by the SettingsStore."""

    @abc.abstractmethod
    def close(self) -> None:
        """Release the handle. Safe to call when not open."""

    @abc.abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Return the stored string or None when the key is absent."""

    @abc.abstractmethod
    def set(self, key: str, value: str) -> None:
        """Upsert ``key``, refreshing its update timestamp."""

    @abc.abstractmethod
    def delete(self, key: str) -> None:
        """Remove ``key``; absent keys are ignored."""

    @abc.abstractmethod
    def clear(self) -> None:
        """Remove every key."""

    @abc.abstractmethod
    def keys(self) -> list[str]:
        """All stored keys."""

    @abc.abstractmethod
    def flush(self) -> None:
        """Persist pending writes before returning."""


__all__ = ["SettingsBackend"]
