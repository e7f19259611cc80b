"""Short-lived anti-forgery storage for the authorize redirect round-trip.

State, nonce and PKCE verifier are written when a login URL is issued and read
once by the callback. Values live in the caller's own session mapping (the
signed session cookie in the web app), never in a process-wide cache.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import MutableMapping
from typing import Any


class TransientStore(ABC):
    """Abstract interface for per-session transient values."""

    @abstractmethod
    def set(self, key: str, value: Any) -> None:
        """Store a value under `key`."""

    @abstractmethod
    def get(self, key: str, default: Any = None) -> Any:
        """Read a value without consuming it."""

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove a single value."""

    @abstractmethod
    def purge(self) -> None:
        """Remove every value owned by this store."""

    def pop(self, key: str, default: Any = None) -> Any:
        """Read a value and discard it."""
        value = self.get(key, default)
        self.delete(key)
        return value


class SessionTransientStore(TransientStore):
    """Transient store namespaced inside a session mapping."""

    KEY_PREFIX = "idp_"

    def __init__(self, session: MutableMapping[str, Any]) -> None:
        self._session = session

    def _format_key(self, key: str) -> str:
        return f"{self.KEY_PREFIX}{key}"

    def set(self, key: str, value: Any) -> None:
        self._session[self._format_key(key)] = value

    def get(self, key: str, default: Any = None) -> Any:
        return self._session.get(self._format_key(key), default)

    def delete(self, key: str) -> None:
        self._session.pop(self._format_key(key), None)

    def purge(self) -> None:
        for key in [k for k in self._session if k.startswith(self.KEY_PREFIX)]:
            del self._session[key]

    def keys(self) -> list[str]:
        """Unprefixed keys currently held."""
        prefix_len = len(self.KEY_PREFIX)
        return [k[prefix_len:] for k in self._session if k.startswith(self.KEY_PREFIX)]
