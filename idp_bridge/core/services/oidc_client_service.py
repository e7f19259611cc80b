"""Identity exchange: turns an authorization-code callback into an `ExternalIdentity`."""

from collections.abc import Mapping
from typing import Any

from loguru import logger

from idp_bridge.core.exceptions import (
    AuthenticationLoginException,
    RoleMappingError,
    TokenValidationError,
)
from idp_bridge.core.models.identity import ExternalIdentity
from idp_bridge.core.services.management_client import IdpManagementClient
from idp_bridge.core.services.protocol_client import (
    NONCE_KEY,
    STATE_KEY,
    OidcProtocolClient,
)
from idp_bridge.runtime.config.config_data import IdpSettings

LOGIN_FAILED_MESSAGE = "There was a problem logging you in. Please try again."

# Protocol claims copied from the verified ID token when user info lacks them.
_ID_TOKEN_CLAIMS = ("iss", "aud", "iat", "exp", "sid", "nonce")


def normalize_role_name(name: str) -> str:
    """`"Content Editor"` -> `"content_editor"`."""
    return name.strip().lower().replace(" ", "_")


class OidcClientService:
    """Login/logout URLs and the code exchange for one user session."""

    def __init__(
        self,
        protocol_client: OidcProtocolClient,
        settings: IdpSettings,
        redirect_uri: str,
        management_client: IdpManagementClient | None = None,
    ) -> None:
        self._client = protocol_client
        self._settings = settings
        self._redirect_uri = redirect_uri
        self._management = management_client

    @property
    def redirect_uri(self) -> str:
        return self._redirect_uri

    def end_session(self) -> None:
        """Drop the protocol session (held tokens and anti-forgery values)."""
        self._client.logout()

    async def build_login_url(self, return_to: str | None = None) -> str:
        """Authorize URL; `return_to` replaces the configured callback URI when given."""
        return await self._client.build_authorize_url(return_to or self._redirect_uri)

    async def build_logout_url(
        self, return_to: str | None = None, id_token_hint: str | None = None
    ) -> str:
        return await self._client.build_end_session_url(return_to, id_token_hint)

    def get_state(self) -> str:
        """State for a login started by the inline widget, which calls back to `redirect_uri`."""
        self._client.expect_callback(self._redirect_uri)
        return self._client.issue(STATE_KEY)

    def get_nonce(self) -> str:
        return self._client.issue(NONCE_KEY)

    async def exchange(self, params: Mapping[str, str]) -> ExternalIdentity | None:
        """Complete the code exchange and return the authenticated identity.

        Returns None when the IdP reports no user. Any failure ends the protocol
        session before it is raised.

        Raises:
            AuthenticationLoginException: If the exchange or validation fails
        """
        try:
            await self._client.exchange_authorization_code(params)
            user_info = await self._get_user_info()
            if not user_info:
                return None

            token_claims = await self._validate_token_subject(user_info.get("sub"))
            for claim in _ID_TOKEN_CLAIMS:
                if user_info.get(claim) is None and claim in token_claims:
                    user_info[claim] = token_claims[claim]

            return ExternalIdentity.make(
                user_info,
                refresh_token=self._client.get_refresh_token(),
                id_token=self._client.get_id_token(),
            )
        except AuthenticationLoginException:
            self._client.logout()
            raise
        except Exception as e:
            logger.error(f"Authorization code exchange failed: {e}")
            self._client.logout()
            raise AuthenticationLoginException(
                str(e), error_message=LOGIN_FAILED_MESSAGE
            ) from e

    async def _get_user_info(self) -> dict[str, Any]:
        user_info = dict(await self._client.get_user_info())
        if not user_info:
            return {}

        # Some tenants only send one of the two identifiers.
        user_info["sub"] = user_info.get("sub") or user_info.get("user_id")
        user_info["user_id"] = user_info.get("user_id") or user_info.get("sub")

        if self._settings.fetch_idp_roles and self._management and user_info["user_id"]:
            user_info["roles"] = await self._get_user_roles(user_info["user_id"])
        return user_info

    async def _get_user_roles(self, user_id: str) -> list[str]:
        try:
            roles = await self._management.get_user_roles(user_id)
        except RoleMappingError as e:
            logger.error(f"Failed to fetch IdP roles for {e.external_user_id}: {e}")
            return []

        names = []
        for role in roles:
            name = role.get("name") if isinstance(role, Mapping) else None
            if isinstance(name, str) and name.strip():
                names.append(normalize_role_name(name))
            else:
                logger.warning(f"Skipping malformed IdP role entry for {user_id}: {role!r}")
        return names

    async def _validate_token_subject(self, subject: str | None) -> dict[str, Any]:
        id_token = self._client.get_id_token()
        if not id_token:
            raise TokenValidationError("No ID token available to validate the subject")

        claims = await self._client.decode_and_verify(id_token)
        if not subject or subject != claims.get("sub"):
            raise AuthenticationLoginException(
                "Failed to validate the user token subject.",
                error_message=LOGIN_FAILED_MESSAGE,
            )
        return claims
