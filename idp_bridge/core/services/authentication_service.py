"""Authentication orchestration for the login-page, callback and logout entry points.

Only `AuthenticationLoginException` leaves `handle_login`; the controller catches it,
logs it and redirects to its target. The login-page and logout paths never raise:
any failure becomes a redirect to the site root.
"""

from collections.abc import Mapping, MutableMapping
from typing import Any

from loguru import logger
from pydantic import BaseModel

from idp_bridge.core.entities.user import User
from idp_bridge.core.exceptions import (
    AuthenticationLoginException,
    UserProvisionError,
    UserStoreError,
)
from idp_bridge.core.models.identity import ExternalIdentity
from idp_bridge.core.security import absolute_return_url
from idp_bridge.core.services.configuration_service import tenant_cdn
from idp_bridge.core.services.oidc_client_service import OidcClientService
from idp_bridge.core.services.user_provision_service import UserProvisionService
from idp_bridge.runtime.config.config_data import IdpSettings

# IdP errors meaning the user must interact with the IdP again.
INTERACTION_REQUIRED_ERRORS = frozenset(
    {"login_required", "consent_required", "interaction_required"}
)
GENERIC_LOGIN_ERROR = "An error occurred during login."

SESSION_USER_KEY = "user_id"
SESSION_REFRESH_TOKEN_KEY = "refresh_token"
SESSION_ID_TOKEN_KEY = "id_token"
SESSION_LOGIN_ERROR_KEY = "login_error"


class AuthRedirect(BaseModel):
    """Redirect instruction; `trusted` marks redirects to the IdP host."""

    url: str
    trusted: bool = False


class InlineLoginPage(BaseModel):
    """Render context for the legacy embedded login widget."""

    domain: str
    client_id: str
    callback_url: str
    cdn: str
    state: str
    nonce: str
    scope: str
    form_title: str = ""
    allow_signup: bool = False


class AuthenticationService:
    """Coordinates exchange, reconciliation and the user's session."""

    def __init__(
        self,
        oidc_client: OidcClientService,
        user_provision: UserProvisionService,
        settings: IdpSettings,
    ) -> None:
        self._oidc = oidc_client
        self._user_provision = user_provision
        self._settings = settings

    async def handle_login_page(self) -> AuthRedirect | InlineLoginPage:
        """Redirect to the IdP in SSO mode, otherwise describe the inline login page."""
        try:
            if self._settings.redirect_for_sso:
                return AuthRedirect(url=await self._oidc.build_login_url(), trusted=True)

            return InlineLoginPage(
                domain=self._settings.resolved_domain,
                client_id=self._settings.client_id,
                callback_url=self._oidc.redirect_uri,
                cdn=tenant_cdn(self._settings.domain),
                state=self._oidc.get_state(),
                nonce=self._oidc.get_nonce(),
                scope=" ".join(self._settings.request_scopes),
                form_title=self._settings.form_title,
                allow_signup=self._settings.allow_signup,
            )
        except Exception as e:
            logger.error(f"Could not prepare the login page: {e}")
            return AuthRedirect(url="/")

    async def handle_login(
        self, params: Mapping[str, str], session: MutableMapping[str, Any]
    ) -> AuthRedirect:
        """Handle the IdP callback.

        Args:
            params: Callback query parameters
            session: The user's session; receives the logged-in user id

        Raises:
            AuthenticationLoginException: On an IdP error, a failed exchange or a
                rejected identity
        """
        error = params.get("error")
        if error:
            if error in INTERACTION_REQUIRED_ERRORS:
                raise AuthenticationLoginException(
                    error, error_message=params.get("error_description")
                )
            description = params.get("error_description") or GENERIC_LOGIN_ERROR
            raise AuthenticationLoginException(description, error_message=description)

        identity = await self._oidc.exchange(params)
        if identity is not None:
            self._check_verified_email(identity)
            user = self._login_user(identity)
            if user is not None:
                session[SESSION_USER_KEY] = user.id
                if identity.refresh_token:
                    session[SESSION_REFRESH_TOKEN_KEY] = identity.refresh_token
                if identity.id_token:
                    session[SESSION_ID_TOKEN_KEY] = identity.id_token

        return AuthRedirect(url=self._settings.landing_path)

    async def handle_logout(
        self,
        params: Mapping[str, str],
        session: MutableMapping[str, Any],
        base_url: str,
    ) -> AuthRedirect:
        """End the local session and redirect to the IdP's logout endpoint."""
        try:
            id_token_hint = session.get(SESSION_ID_TOKEN_KEY)
            session.clear()
            return_to = absolute_return_url(
                params.get("returnTo") or self._settings.logout_return_url,
                base_url,
                self._settings.allowed_redirect_hosts,
            )
            return AuthRedirect(
                url=await self._oidc.build_logout_url(return_to, id_token_hint),
                trusted=True,
            )
        except Exception as e:
            logger.error(f"Logout failed: {e}")
            return AuthRedirect(url="/")

    def _check_verified_email(self, identity: ExternalIdentity) -> None:
        if self._settings.requires_verified_email and identity.email_verified is not True:
            self._oidc.end_session()
            raise AuthenticationLoginException(
                f"Unverified email for subject {identity.subject}",
                error_message="Please verify your email address before logging in.",
            )

    def _login_user(self, identity: ExternalIdentity) -> User | None:
        try:
            return self._user_provision.login(identity)
        except (UserProvisionError, UserStoreError) as e:
            logger.error(f"User reconciliation failed: {e}")
            raise AuthenticationLoginException(
                str(e),
                error_message="Your account could not be set up. Please contact support.",
            ) from e
