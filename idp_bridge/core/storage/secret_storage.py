"""Secret references for sensitive IdP settings.

A setting such as `client_secret_ref` names an entry in one of these backends
instead of holding the secret itself. Backends return None for unknown references;
the configuration service decides how to fall back.
"""

from __future__ import annotations

import os
from abc import ABC, abstractmethod
from pathlib import Path

from loguru import logger

from idp_bridge.runtime.config.config_data import IdpStorageConfig


class SecretRepository(ABC):
    """Abstract key-vault lookup."""

    @abstractmethod
    def get_secret(self, reference: str) -> str | None:
        """Return the secret value for `reference`, or None when it does not exist."""
        raise NotImplementedError


class EnvironmentSecretRepository(SecretRepository):
    """References are environment variable names."""

    def get_secret(self, reference: str) -> str | None:
        return os.getenv(reference) or None


class FileSecretRepository(SecretRepository):
    """References are file names inside a secrets directory (e.g. /run/secrets)."""

    def __init__(self, secrets_dir: str | Path) -> None:
        self._secrets_dir = Path(secrets_dir)

    def get_secret(self, reference: str) -> str | None:
        path = (self._secrets_dir / reference).resolve()
        if self._secrets_dir.resolve() not in path.parents:
            logger.warning(f"Secret reference '{reference}' escapes the secrets directory")
            return None
        if not path.is_file():
            return None
        try:
            return path.read_text(encoding="utf-8").strip() or None
        except OSError as e:
            logger.error(f"Failed to read secret '{reference}': {e}")
            return None


class InMemorySecretRepository(SecretRepository):
    """Dictionary-backed secrets, for tests and single-process setups."""

    def __init__(self, secrets: dict[str, str] | None = None) -> None:
        self._secrets = dict(secrets or {})

    def set_secret(self, reference: str, value: str) -> None:
        self._secrets[reference] = value

    def get_secret(self, reference: str) -> str | None:
        return self._secrets.get(reference) or None


def get_secret_repository(idp_config: IdpStorageConfig) -> SecretRepository:
    """Build the secret backend selected in the bootstrap config."""
    if idp_config.secrets_backend == "file":
        return FileSecretRepository(idp_config.secrets_dir)
    if idp_config.secrets_backend == "memory":
        return InMemorySecretRepository()
    return EnvironmentSecretRepository()
