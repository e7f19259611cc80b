"""Environment variable layers.

This module provides:
- EnvironmentVariables: process-level values from the environment and .env files
- IdpEnvironmentOverrides: `IDP_*` variables that take precedence over stored IdP settings
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class EnvironmentVariables(BaseSettings):
    """Simple primitive values loaded from environment variables and .env files."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_ignore_empty=True,
        extra="ignore",
    )

    environment: Literal["development", "production", "test"] = Field(
        default="development", validation_alias="APP_ENVIRONMENT"
    )
    log_level: str = Field(default="INFO")
    config_file: str = Field(default="config.yaml", validation_alias="APP_CONFIG_FILE")


class IdpEnvironmentOverrides(BaseSettings):
    """Per-key overrides for the IdP settings, e.g. IDP_DOMAIN or IDP_CLIENT_SECRET_REF.

    Unset variables stay None and do not override anything.
    """

    model_config = SettingsConfigDict(
        env_prefix="IDP_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_ignore_empty=True,
        extra="ignore",
    )

    domain: str | None = None
    custom_domain: str | None = None
    client_id: str | None = None
    client_secret: str | None = None
    client_secret_ref: str | None = None
    cookie_secret: str | None = None
    cookie_secret_ref: str | None = None
    scopes: str | None = None
    username_claim: str | None = None
    requires_verified_email: bool | None = None
    role_mapping: str | None = None
    claim_mapping: str | None = None
    sync_role_mapping: bool | None = None
    sync_claim_mapping: bool | None = None
    redirect_for_sso: bool | None = None
    default_role: str | None = None
    jwt_signing_algorithm: str | None = None
    offline_access: bool | None = None
    logout_return_url: str | None = None
    fetch_idp_roles: bool | None = None
    callback_path: str | None = None
    landing_path: str | None = None
    allowed_redirect_hosts: str | None = None
    form_title: str | None = None
    allow_signup: bool | None = None

    def overrides(self) -> dict[str, Any]:
        """Return only the keys that were actually set in the environment."""
        return self.model_dump(exclude_none=True)
