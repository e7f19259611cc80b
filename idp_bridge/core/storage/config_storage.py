"""Persistent, versioned key-value backends for the editable IdP settings."""

from __future__ import annotations

import copy
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

import yaml
from loguru import logger

from idp_bridge.runtime.config.config_data import IdpStorageConfig


class ConfigStorage(ABC):
    """Abstract interface for the stored IdP settings."""

    @abstractmethod
    def load(self) -> dict[str, Any]:
        """Return a copy of every stored key."""

    @abstractmethod
    def save(self, values: dict[str, Any]) -> int:
        """Write `values` over the stored keys and return the new version."""

    @property
    @abstractmethod
    def version(self) -> int:
        """Monotonic counter bumped on every save."""


class InMemoryConfigStorage(ConfigStorage):
    """Settings held in process memory."""

    def __init__(self, values: dict[str, Any] | None = None) -> None:
        self._values: dict[str, Any] = dict(values or {})
        self._version = 0
        self._lock = threading.Lock()

    def load(self) -> dict[str, Any]:
        with self._lock:
            return copy.deepcopy(self._values)

    def save(self, values: dict[str, Any]) -> int:
        with self._lock:
            self._values.update(copy.deepcopy(values))
            self._version += 1
            return self._version

    @property
    def version(self) -> int:
        return self._version


class YamlConfigStorage(ConfigStorage):
    """Settings kept in a YAML file of the form `{version: N, settings: {...}}`."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._lock = threading.Lock()

    def _read(self) -> dict[str, Any]:
        if not self._path.exists():
            return {"version": 0, "settings": {}}
        try:
            data = yaml.safe_load(self._path.read_text(encoding="utf-8")) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Error parsing settings file {self._path}: {e}") from e
        data.setdefault("version", 0)
        data.setdefault("settings", {})
        return data

    def load(self) -> dict[str, Any]:
        with self._lock:
            return dict(self._read()["settings"])

    def save(self, values: dict[str, Any]) -> int:
        with self._lock:
            data = self._read()
            data["settings"].update(values)
            data["version"] = int(data["version"]) + 1
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_text(
                yaml.safe_dump(data, sort_keys=True), encoding="utf-8"
            )
            logger.debug(f"Saved IdP settings version {data['version']} to {self._path}")
            return data["version"]

    @property
    def version(self) -> int:
        with self._lock:
            return int(self._read()["version"])


def get_config_storage(idp_config: IdpStorageConfig) -> ConfigStorage:
    """Build the settings backend selected in the bootstrap config."""
    if idp_config.backend == "memory":
        return InMemoryConfigStorage()
    return YamlConfigStorage(idp_config.settings_file)
