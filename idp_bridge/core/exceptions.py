"""Exception types raised by the identity-provider integration."""

from __future__ import annotations

from typing import Any


class IdpBridgeError(Exception):
    """Base exception for IdP integration errors."""


class ConfigurationError(IdpBridgeError):
    """Required IdP settings are missing or invalid."""


class TokenValidationError(IdpBridgeError):
    """State, nonce, signature or subject validation failed."""


class RoleMappingError(IdpBridgeError):
    """Fetching or mapping IdP roles failed."""

    def __init__(
        self,
        message: str,
        external_user_id: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.external_user_id = external_user_id
        self.context = context or {}


class UserProvisionError(IdpBridgeError):
    """A new local user cannot be provisioned from the external identity."""


class UserStoreError(IdpBridgeError):
    """The local user store failed to create or update a user."""


class AuthenticationLoginException(Exception):
    """Login failed; the controller logs it and redirects to `redirect_url`.

    `error_message`, when set, is the text to show to the end user. The exception
    message itself is meant for logs.
    """

    def __init__(
        self,
        message: str,
        redirect_url: str = "/",
        error_message: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.redirect_url = redirect_url
        self.error_message = error_message
