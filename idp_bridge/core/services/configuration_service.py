"""IdP configuration service.

Resolves every IdP setting from three layers, highest precedence first:
`IDP_*` environment overrides, the stored value, then the documented default.
Sensitive values (`client_secret`, `cookie_secret`) may be stored as a reference
(`client_secret_ref`, `cookie_secret_ref`) into a secret repository; the reference
wins and the direct value is only a logged fallback.

The merged snapshot is cached together with the storage version it was read at and
reloaded once the version moves, so writes made elsewhere (another worker or the
CLI) are picked up. Reads and writes go through one re-entrant lock, so a write
never races a concurrent cache fill.
"""

from __future__ import annotations

import re
import threading
from typing import Any

from loguru import logger
from pydantic import ValidationError

from idp_bridge.core.exceptions import ConfigurationError
from idp_bridge.core.models.mapping import parse_field_mapping, parse_role_mapping
from idp_bridge.core.storage.config_storage import ConfigStorage, get_config_storage
from idp_bridge.core.storage.secret_storage import (
    SecretRepository,
    get_secret_repository,
)
from idp_bridge.runtime.config.config_data import IdpSettings, IdpStorageConfig
from idp_bridge.runtime.settings import IdpEnvironmentOverrides

DEFAULT_USERNAME_CLAIM = "nickname"
DEFAULT_SCOPES = "openid email profile"
DEFAULT_JWT_ALGORITHM = "RS256"
MIN_COOKIE_SECRET_LENGTH = 32

SECRET_KEYS = ("client_secret", "cookie_secret")
REQUIRED_KEYS = ("domain", "client_id", "client_secret", "cookie_secret")

DEFAULTS: dict[str, Any] = {
    "domain": "",
    "custom_domain": None,
    "client_id": "",
    "client_secret": "",
    "client_secret_ref": None,
    "cookie_secret": "",
    "cookie_secret_ref": None,
    "scopes": DEFAULT_SCOPES,
    "username_claim": DEFAULT_USERNAME_CLAIM,
    "requires_verified_email": False,
    "role_mapping": "",
    "claim_mapping": "",
    "sync_role_mapping": False,
    "sync_claim_mapping": False,
    "redirect_for_sso": False,
    "default_role": "authenticated",
    "jwt_signing_algorithm": DEFAULT_JWT_ALGORITHM,
    "offline_access": False,
    "logout_return_url": None,
    "fetch_idp_roles": True,
    "callback_path": "/auth/callback",
    "landing_path": "/user",
    "allowed_redirect_hosts": [],
    "form_title": "",
    "allow_signup": False,
}

_TENANT_REGION = re.compile(r"^[\w-]+\.([\w-]+)\.auth0\.com$")


def tenant_cdn(domain: str) -> str:
    """CDN base URL of the tenant region, for the legacy inline login widget."""
    match = _TENANT_REGION.match(domain or "")
    if match and match.group(1) != "us":
        return f"https://cdn.{match.group(1)}.auth0.com"
    return "https://cdn.auth0.com"


def _split_list(value: Any, separator: str | None) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        parts = value.split(separator) if separator else value.split()
        return tuple(p.strip() for p in parts if p.strip())
    return tuple(str(v) for v in value)


class ConfigurationService:
    """Layered, cached access to the IdP settings."""

    def __init__(
        self,
        storage: ConfigStorage,
        secret_repository: SecretRepository,
        env_overrides: dict[str, Any] | None = None,
    ) -> None:
        """
        Args:
            storage: Backend holding the editable settings
            secret_repository: Key vault used to resolve `*_ref` settings
            env_overrides: Explicit overrides; read from `IDP_*` variables when None
        """
        self._storage = storage
        self._secrets = secret_repository
        self._env_overrides = env_overrides
        self._cache: dict[str, Any] | None = None
        self._cache_version: int | None = None
        self._lock = threading.RLock()

    @classmethod
    def from_config(cls, idp_config: IdpStorageConfig) -> ConfigurationService:
        """Service over the storage and secret backends named in the bootstrap config."""
        return cls(get_config_storage(idp_config), get_secret_repository(idp_config))

    # ------------------------------------------------------------------ raw access

    def get(self, key: str, default: Any = None) -> Any:
        """Return the resolved value of `key`.

        Falls back to `default`, then to the documented default for the key.
        """
        value = self.get_all().get(key)
        if value is None:
            return default if default is not None else DEFAULTS.get(key)
        return value

    def get_all(self) -> dict[str, Any]:
        """Return a copy of the stored settings merged with environment overrides."""
        with self._lock:
            version = self._storage.version
            if self._cache is None or self._cache_version != version:
                self._cache = self._load_configuration()
                self._cache_version = version
            return dict(self._cache)

    def set(self, key: str, value: Any) -> ConfigurationService:
        return self.set_multiple({key: value})

    def set_multiple(self, values: dict[str, Any]) -> ConfigurationService:
        """Persist several keys at once and drop the cached snapshot."""
        with self._lock:
            version = self._storage.save(values)
            self._cache = None
        logger.info(f"IdP settings updated to version {version}: {sorted(values)}")
        return self

    @property
    def version(self) -> int:
        return self._storage.version

    def _load_configuration(self) -> dict[str, Any]:
        values = self._storage.load()
        overrides = self._env_overrides
        if overrides is None:
            overrides = IdpEnvironmentOverrides().overrides()
        if overrides:
            logger.debug(f"Applying IdP environment overrides: {sorted(overrides)}")
        values.update(overrides)
        return values

    # --------------------------------------------------------------------- secrets

    def get_client_secret(self) -> str:
        return self._resolve_secret("client_secret")

    def get_cookie_secret(self) -> str:
        return self._resolve_secret("cookie_secret")

    def _resolve_secret(self, key: str) -> str:
        reference = self.get(f"{key}_ref")
        direct_value = self.get(key, "")

        if reference:
            secret = self._secrets.get_secret(reference)
            if secret:
                return secret
            logger.warning(
                f"Secret reference for {key} could not be resolved; "
                "falling back to the value stored in configuration."
            )
            return direct_value

        if direct_value:
            logger.warning(
                f"Using {key} from configuration. "
                "Consider storing it behind a secret reference for better security."
            )
        return direct_value

    # --------------------------------------------------------------- mapping rules

    def get_role_mapping_rules(self) -> dict[str, list[str]]:
        return parse_role_mapping(self.get("role_mapping", ""))

    def get_profile_field_mapping_rules(self) -> dict[str, str]:
        return parse_field_mapping(self.get("claim_mapping", ""))

    # -------------------------------------------------------------- derived values

    def resolve_domain(self) -> str:
        return self.get("custom_domain") or self.get("domain", "")

    def get_domain_tenant_cdn(self) -> str:
        return tenant_cdn(self.get("domain", ""))

    def get_default_scopes(self) -> list[str]:
        return list(_split_list(self.get("scopes"), None))

    def redirect_uri(self, base_url: str) -> str:
        return f"{base_url.rstrip('/')}{self.get('callback_path')}"

    # --------------------------------------------------------------- typed record

    def settings(self, require_complete: bool = False) -> IdpSettings:
        """Collapse the resolved snapshot into an immutable `IdpSettings`.

        Args:
            require_complete: Fail when a setting needed to talk to the IdP is empty

        Raises:
            ConfigurationError: If the snapshot is invalid or incomplete
        """
        values = {key: self.get(key) for key in DEFAULTS if not key.endswith("_ref")}
        values["client_secret"] = self.get_client_secret()
        values["cookie_secret"] = self.get_cookie_secret()
        values["scopes"] = _split_list(values["scopes"], None)
        values["allowed_redirect_hosts"] = _split_list(
            values["allowed_redirect_hosts"], ","
        )
        values["role_mapping"] = parse_role_mapping(values["role_mapping"])
        values["claim_mapping"] = parse_field_mapping(values["claim_mapping"])

        if require_complete:
            missing = [key for key in REQUIRED_KEYS if not values.get(key)]
            if missing:
                raise ConfigurationError(
                    f"Missing required IdP settings: {', '.join(missing)}"
                )

        cookie_secret = values["cookie_secret"]
        if cookie_secret and len(cookie_secret) < MIN_COOKIE_SECRET_LENGTH:
            logger.warning(
                f"cookie_secret is shorter than {MIN_COOKIE_SECRET_LENGTH} characters"
            )

        try:
            return IdpSettings(**values)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid IdP settings: {e}") from e
