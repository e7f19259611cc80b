"""OIDC protocol client: authorize/logout URLs, code exchange and ID token verification.

This is the narrow boundary to the authorization server. Anti-forgery values
(state, nonce, PKCE verifier) are written to the caller's transient store when the
authorize URL is built and consumed exactly once by the code exchange.
"""

from __future__ import annotations

import base64
from collections.abc import Mapping
from typing import Any
from urllib.parse import urlencode

import httpx
from authlib.jose import JoseError, JsonWebKey, JsonWebToken
from cachetools import TTLCache
from loguru import logger
from pydantic import BaseModel, ConfigDict

from idp_bridge.core.exceptions import TokenValidationError
from idp_bridge.core.security import (
    constant_time_equals,
    generate_nonce,
    generate_pkce_pair,
    generate_secure_token,
    generate_state,
)
from idp_bridge.core.services.telemetry import client_info_headers
from idp_bridge.core.storage.transient_storage import TransientStore
from idp_bridge.runtime.config.config_data import IdpSettings

STATE_KEY = "state"
NONCE_KEY = "nonce"
CODE_VERIFIER_KEY = "code_verifier"
REDIRECT_URI_KEY = "redirect_uri"

CLOCK_SKEW_SECONDS = 60

_DISCOVERY_CACHE: TTLCache[str, "DiscoveryDocument"] = TTLCache(maxsize=10, ttl=3600)
_JWKS_CACHE: TTLCache[str, dict[str, Any]] = TTLCache(maxsize=10, ttl=3600)


class DiscoveryDocument(BaseModel):
    """Subset of the OpenID provider metadata used by the login flow."""

    model_config = ConfigDict(extra="allow")

    issuer: str
    authorization_endpoint: str
    token_endpoint: str
    userinfo_endpoint: str | None = None
    jwks_uri: str
    end_session_endpoint: str | None = None

    @classmethod
    def fallback(cls, domain: str) -> DiscoveryDocument:
        """Conventional endpoint layout of the tenant when discovery is unavailable."""
        base = f"https://{domain}"
        return cls(
            issuer=f"{base}/",
            authorization_endpoint=f"{base}/authorize",
            token_endpoint=f"{base}/oauth/token",
            userinfo_endpoint=f"{base}/userinfo",
            jwks_uri=f"{base}/.well-known/jwks.json",
        )


class TokenResponse(BaseModel):
    """OAuth2 token response."""

    model_config = ConfigDict(extra="allow")

    access_token: str
    token_type: str = "Bearer"
    expires_in: int | None = None
    refresh_token: str | None = None
    id_token: str | None = None
    scope: str | None = None


def clear_protocol_caches() -> None:
    """Drop cached discovery documents and key sets."""
    _DISCOVERY_CACHE.clear()
    _JWKS_CACHE.clear()


class OidcProtocolClient:
    """Authorization code + PKCE client for a single IdP tenant."""

    def __init__(
        self,
        settings: IdpSettings,
        transient_store: TransientStore,
        timeout: float = 10.0,
    ) -> None:
        self._settings = settings
        self._store = transient_store
        self._timeout = timeout
        self._tokens: TokenResponse | None = None
        self._expected_nonce: str | None = None

    def _http_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._timeout, headers=client_info_headers())

    # ------------------------------------------------------------------ metadata

    async def get_discovery(self) -> DiscoveryDocument:
        """Fetch (or reuse) the provider metadata of the configured tenant."""
        domain = self._settings.resolved_domain
        cached = _DISCOVERY_CACHE.get(domain)
        if cached is not None:
            return cached

        url = f"https://{domain}/.well-known/openid-configuration"
        try:
            async with self._http_client() as client:
                response = await client.get(url)
                response.raise_for_status()
                document = DiscoveryDocument(**response.json())
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"OIDC discovery failed for {domain}, using default endpoints: {e}")
            document = DiscoveryDocument.fallback(domain)

        _DISCOVERY_CACHE[domain] = document
        return document

    async def _get_jwks(self) -> dict[str, Any]:
        discovery = await self.get_discovery()
        jwks = _JWKS_CACHE.get(discovery.jwks_uri)
        if jwks:
            return jwks

        async with self._http_client() as client:
            response = await client.get(discovery.jwks_uri)
            response.raise_for_status()
            jwks = response.json()

        _JWKS_CACHE[discovery.jwks_uri] = jwks
        return jwks

    # ------------------------------------------------------------- authorize/logout

    def issue(self, key: str) -> str:
        """Issue a fresh anti-forgery value under `key` and return it."""
        value = generate_secure_token(32)
        self._store.set(key, value)
        return value

    def expect_callback(self, redirect_uri: str) -> None:
        """Remember the callback URI of an authorization request started elsewhere.

        The inline login widget builds its own authorize request without a PKCE
        challenge, so only the state, nonce and callback URI are known here.
        """
        self._store.set(REDIRECT_URI_KEY, redirect_uri)

    async def build_authorize_url(
        self, redirect_uri: str, extra_params: Mapping[str, str] | None = None
    ) -> str:
        """Build the authorize URL and remember state, nonce and PKCE verifier."""
        state = generate_state()
        nonce = generate_nonce()
        code_verifier, code_challenge = generate_pkce_pair()

        self._store.set(STATE_KEY, state)
        self._store.set(NONCE_KEY, nonce)
        self._store.set(CODE_VERIFIER_KEY, code_verifier)
        self._store.set(REDIRECT_URI_KEY, redirect_uri)

        params = {
            "client_id": self._settings.client_id,
            "response_type": "code",
            "scope": " ".join(self._settings.request_scopes),
            "redirect_uri": redirect_uri,
            "state": state,
            "nonce": nonce,
            "code_challenge": code_challenge,
            "code_challenge_method": "S256",
        }
        if extra_params:
            params.update(extra_params)

        discovery = await self.get_discovery()
        return f"{discovery.authorization_endpoint}?{urlencode(params)}"

    async def build_end_session_url(
        self, return_to: str | None = None, id_token_hint: str | None = None
    ) -> str:
        """Build the end-session URL and clear the local protocol session.

        `id_token_hint` is the ID token kept from login; the token held by this
        client is used when none is given.
        """
        discovery = await self.get_discovery()
        id_token = id_token_hint or self.get_id_token()
        self.logout()

        if discovery.end_session_endpoint:
            params = {"client_id": self._settings.client_id}
            if return_to:
                params["post_logout_redirect_uri"] = return_to
            if id_token:
                params["id_token_hint"] = id_token
            return f"{discovery.end_session_endpoint}?{urlencode(params)}"

        params = {"client_id": self._settings.client_id}
        if return_to:
            params["returnTo"] = return_to
        return f"https://{self._settings.resolved_domain}/v2/logout?{urlencode(params)}"

    def logout(self) -> None:
        """Forget held tokens and every transient anti-forgery value."""
        self._store.purge()
        self._tokens = None
        self._expected_nonce = None

    # ----------------------------------------------------------------- exchange

    def _client_auth_headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/x-www-form-urlencoded"}
        if self._settings.client_secret:
            credentials = f"{self._settings.client_id}:{self._settings.client_secret}"
            encoded_credentials = base64.b64encode(credentials.encode()).decode()
            headers["Authorization"] = f"Basic {encoded_credentials}"
        return headers

    async def exchange_authorization_code(
        self, params: Mapping[str, str]
    ) -> TokenResponse:
        """Exchange the callback's authorization code for tokens.

        Args:
            params: Callback query parameters (`code`, `state`)

        Raises:
            TokenValidationError: On a missing code, a state mismatch or no pending request
            httpx.HTTPError: If the token endpoint call fails
        """
        expected_state = self._store.pop(STATE_KEY)
        code_verifier = self._store.pop(CODE_VERIFIER_KEY)
        redirect_uri = self._store.pop(REDIRECT_URI_KEY)
        self._expected_nonce = self._store.pop(NONCE_KEY)

        code = params.get("code")
        if not code:
            raise TokenValidationError("Missing authorization code")
        if not constant_time_equals(expected_state, params.get("state")):
            raise TokenValidationError("Invalid state")
        if not redirect_uri:
            raise TokenValidationError("No pending authorization request for this session")

        token_data = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": redirect_uri,
            "client_id": self._settings.client_id,
        }
        # Requests from the inline widget carry no PKCE challenge.
        if code_verifier:
            token_data["code_verifier"] = code_verifier

        discovery = await self.get_discovery()
        async with self._http_client() as client:
            response = await client.post(
                discovery.token_endpoint,
                data=token_data,
                headers=self._client_auth_headers(),
            )
            response.raise_for_status()
            self._tokens = TokenResponse(**response.json())

        if not self._tokens.id_token:
            raise TokenValidationError("Token response did not include an ID token")
        return self._tokens

    async def get_user_info(self) -> dict[str, Any]:
        """Fetch the user-info claim set with the held access token."""
        if self._tokens is None:
            raise TokenValidationError("No access token; exchange a code first")

        discovery = await self.get_discovery()
        if not discovery.userinfo_endpoint:
            return {}

        async with self._http_client() as client:
            response = await client.get(
                discovery.userinfo_endpoint,
                headers={"Authorization": f"Bearer {self._tokens.access_token}"},
            )
            response.raise_for_status()
            return response.json()

    def get_id_token(self) -> str | None:
        return self._tokens.id_token if self._tokens else None

    def get_access_token(self) -> str | None:
        return self._tokens.access_token if self._tokens else None

    def get_refresh_token(self) -> str | None:
        return self._tokens.refresh_token if self._tokens else None

    # --------------------------------------------------------------- verification

    async def _verification_key(self) -> Any:
        if self._settings.jwt_signing_algorithm.startswith("HS"):
            return self._settings.client_secret.encode("utf-8")
        return JsonWebKey.import_key_set(await self._get_jwks())

    async def decode_and_verify(self, id_token: str) -> dict[str, Any]:
        """Verify the ID token signature and standard claims.

        Returns:
            The verified claims

        Raises:
            TokenValidationError: If the token is invalid for this client and login attempt
        """
        algorithm = self._settings.jwt_signing_algorithm
        jwt = JsonWebToken([algorithm])
        try:
            claims = jwt.decode(
                id_token,
                await self._verification_key(),
                claims_options={
                    "iss": {"essential": True, "value": self._settings.issuer},
                    "aud": {"essential": True, "value": self._settings.client_id},
                    "sub": {"essential": True},
                    "exp": {"essential": True},
                    "iat": {"essential": True},
                },
            )
            claims.validate(leeway=CLOCK_SKEW_SECONDS)
        except JoseError as e:
            raise TokenValidationError(f"ID token validation failed: {e}") from e

        if self._expected_nonce is not None and not constant_time_equals(
            self._expected_nonce, claims.get("nonce")
        ):
            raise TokenValidationError("Nonce mismatch")

        return dict(claims)
