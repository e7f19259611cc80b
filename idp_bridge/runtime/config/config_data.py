"""Pydantic models for the bootstrap config.yaml file and the resolved IdP settings.

`ConfigData` mirrors the structure of config.yaml. `IdpSettings` is the typed,
immutable record the rest of the system reads once the configuration service has
resolved every key (stored value, environment override and secret reference).
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, computed_field


class LoggingConfig(BaseModel):
    """Logging configuration model."""

    level: str = Field(default="INFO", description="Logging level")
    format: Literal["json", "plain"] = Field(default="json", description="Log format")
    file: str | None = Field(default=None, description="Log file path")
    max_size_mb: int = Field(default=10, description="Maximum log file size in MB")
    backup_count: int = Field(
        default=5, description="Number of backup log files to keep"
    )


class DatabaseConfig(BaseModel):
    """Database configuration for the local user store."""

    url: str = Field(
        default="sqlite:///./idp_bridge.db", description="Database connection URL"
    )
    echo: bool = Field(default=False, description="Echo SQL statements")


class AppConfig(BaseModel):
    """Application configuration model."""

    environment: Literal["development", "production", "test"] = Field(
        default="development", description="Application environment"
    )
    host: str = Field(default="localhost", description="Application host")
    port: int = Field(default=8000, description="Application port")
    session_cookie: str = Field(
        default="idp_session", description="Name of the signed session cookie"
    )
    session_max_age: int = Field(
        default=3600, description="Session maximum age in seconds"
    )

    @property
    def base_url(self) -> str:
        """Construct the base URL from host and port."""
        scheme = "https" if self.environment == "production" else "http"
        return f"{scheme}://{self.host}:{self.port}"


class IdpStorageConfig(BaseModel):
    """Where the IdP settings and referenced secrets live."""

    backend: Literal["memory", "yaml"] = Field(
        default="yaml", description="Backend holding the editable IdP settings"
    )
    settings_file: str = Field(
        default="idp_settings.yaml", description="YAML file used by the yaml backend"
    )
    secrets_backend: Literal["env", "file", "memory"] = Field(
        default="env", description="Backend used to resolve secret references"
    )
    secrets_dir: str = Field(
        default="/run/secrets", description="Directory holding file-backed secrets"
    )
    http_timeout: float = Field(
        default=10.0, description="Timeout in seconds for calls to the IdP"
    )


class ConfigData(BaseModel):
    """Top level bootstrap configuration."""

    app: AppConfig = Field(default_factory=AppConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    idp: IdpStorageConfig = Field(default_factory=IdpStorageConfig)


class IdpSettings(BaseModel):
    """Resolved identity provider settings.

    Built once from a configuration snapshot; every former getter is a field
    access here. Secrets are already resolved through their references.
    """

    model_config = ConfigDict(frozen=True)

    domain: str = ""
    custom_domain: str | None = None
    client_id: str = ""
    client_secret: str = Field(default="", repr=False)
    cookie_secret: str = Field(default="", repr=False)
    scopes: tuple[str, ...] = ("openid", "email", "profile")
    username_claim: str = "nickname"
    requires_verified_email: bool = False
    role_mapping: dict[str, list[str]] = Field(default_factory=dict)
    claim_mapping: dict[str, str] = Field(default_factory=dict)
    sync_role_mapping: bool = False
    sync_claim_mapping: bool = False
    redirect_for_sso: bool = False
    default_role: str = "authenticated"
    jwt_signing_algorithm: str = "RS256"
    offline_access: bool = False
    logout_return_url: str | None = None
    fetch_idp_roles: bool = True
    callback_path: str = "/auth/callback"
    landing_path: str = "/user"
    allowed_redirect_hosts: tuple[str, ...] = ()
    form_title: str = ""
    allow_signup: bool = False

    @computed_field
    @property
    def resolved_domain(self) -> str:
        """The user-facing domain: the custom domain when set."""
        return self.custom_domain or self.domain

    @property
    def issuer(self) -> str:
        """Expected `iss` claim of ID tokens issued by the tenant."""
        return f"https://{self.resolved_domain}/"

    @property
    def request_scopes(self) -> list[str]:
        """Scopes sent on the authorize request."""
        scopes = list(self.scopes)
        if self.offline_access and "offline_access" not in scopes:
            scopes.append("offline_access")
        return scopes
