"""Unit tests for the OIDC protocol client."""

import base64

import httpx
import pytest

from idp_bridge.core.exceptions import TokenValidationError
from idp_bridge.core.services.protocol_client import OidcProtocolClient
from idp_bridge.core.services.telemetry import CLIENT_INFO_HEADER
from idp_bridge.core.storage import SessionTransientStore
from tests.fixtures.idp import TOKEN_URL, FakeIdp
from tests.utils import (
    CLIENT_ID,
    CLIENT_SECRET,
    DOMAIN,
    REDIRECT_URI,
    make_id_token,
    make_settings,
    query_params,
)


def make_client(browser_session: dict, **overrides) -> OidcProtocolClient:
    return OidcProtocolClient(
        make_settings(**overrides), SessionTransientStore(browser_session)
    )


class TestAuthorizeUrl:
    """Test authorize URL construction."""

    @pytest.mark.asyncio
    async def test_contains_request_parameters(self, fake_idp: FakeIdp, browser_session):
        client = make_client(browser_session)

        url = await client.build_authorize_url(REDIRECT_URI)

        assert url.startswith(f"https://{DOMAIN}/authorize?")
        params = query_params(url)
        assert params["client_id"] == CLIENT_ID
        assert params["response_type"] == "code"
        assert params["scope"] == "openid email profile"
        assert params["redirect_uri"] == REDIRECT_URI
        assert params["code_challenge_method"] == "S256"
        assert params["state"] == browser_session["idp_state"]
        assert params["nonce"] == browser_session["idp_nonce"]
        assert browser_session["idp_code_verifier"]

    @pytest.mark.asyncio
    async def test_offline_access_scope(self, fake_idp: FakeIdp, browser_session):
        client = make_client(browser_session, offline_access=True)

        url = await client.build_authorize_url(REDIRECT_URI)

        assert query_params(url)["scope"] == "openid email profile offline_access"

    @pytest.mark.asyncio
    async def test_custom_domain_is_user_facing(self, fake_idp: FakeIdp, browser_session):
        fake_idp.discovery = None
        client = make_client(browser_session, custom_domain="login.example.com")

        url = await client.build_authorize_url(REDIRECT_URI)

        assert url.startswith("https://login.example.com/authorize?")

    @pytest.mark.asyncio
    async def test_discovery_is_cached(self, fake_idp: FakeIdp, browser_session):
        client = make_client(browser_session)

        await client.build_authorize_url(REDIRECT_URI)
        await client.build_authorize_url(REDIRECT_URI)

        assert len(fake_idp.calls("GET", f"https://{DOMAIN}/.well-known/openid-configuration")) == 1

    @pytest.mark.asyncio
    async def test_sends_client_info_headers(self, fake_idp: FakeIdp, browser_session):
        await make_client(browser_session).build_authorize_url(REDIRECT_URI)

        headers = fake_idp.client_cls.call_args.kwargs["headers"]
        assert headers["User-Agent"].startswith("idp-bridge/")
        assert CLIENT_INFO_HEADER in headers


class TestEndSessionUrl:
    """Test logout URL construction."""

    @pytest.mark.asyncio
    async def test_fallback_logout_endpoint(self, fake_idp: FakeIdp, browser_session):
        client = make_client(browser_session)
        await client.build_authorize_url(REDIRECT_URI)

        url = await client.build_end_session_url("http://testserver/")

        assert url.startswith(f"https://{DOMAIN}/v2/logout?")
        assert query_params(url) == {"client_id": CLIENT_ID, "returnTo": "http://testserver/"}
        assert browser_session == {}

    @pytest.mark.asyncio
    async def test_discovered_end_session_endpoint(self, fake_idp: FakeIdp, browser_session):
        fake_idp.discovery["end_session_endpoint"] = f"https://{DOMAIN}/oidc/logout"

        url = await make_client(browser_session).build_end_session_url("http://testserver/")

        assert url.startswith(f"https://{DOMAIN}/oidc/logout?")
        assert query_params(url)["post_logout_redirect_uri"] == "http://testserver/"
        assert "id_token_hint" not in query_params(url)

    @pytest.mark.asyncio
    async def test_id_token_hint_from_login(self, fake_idp: FakeIdp, browser_session):
        fake_idp.discovery["end_session_endpoint"] = f"https://{DOMAIN}/oidc/logout"
        id_token = make_id_token({"sub": "idp|1"})

        url = await make_client(browser_session).build_end_session_url(
            "http://testserver/", id_token_hint=id_token
        )

        assert query_params(url)["id_token_hint"] == id_token


class TestCodeExchange:
    """Test the authorization code exchange."""

    @pytest.mark.asyncio
    async def test_exchange_consumes_transient_values(self, fake_idp: FakeIdp, browser_session):
        client = make_client(browser_session)
        params = fake_idp.authorize(await client.build_authorize_url(REDIRECT_URI))
        verifier = browser_session["idp_code_verifier"]

        tokens = await client.exchange_authorization_code(params)

        assert tokens.access_token == "user-access-token"
        assert client.get_id_token() == tokens.id_token
        assert browser_session == {}

        _, url, kwargs = fake_idp.calls("POST", TOKEN_URL)[0]
        assert kwargs["data"]["code"] == "auth-code"
        assert kwargs["data"]["code_verifier"] == verifier
        assert kwargs["data"]["redirect_uri"] == REDIRECT_URI
        expected = base64.b64encode(f"{CLIENT_ID}:{CLIENT_SECRET}".encode()).decode()
        assert kwargs["headers"]["Authorization"] == f"Basic {expected}"

    @pytest.mark.asyncio
    async def test_state_mismatch_is_rejected(self, fake_idp: FakeIdp, browser_session):
        client = make_client(browser_session)
        await client.build_authorize_url(REDIRECT_URI)

        with pytest.raises(TokenValidationError):
            await client.exchange_authorization_code({"code": "c", "state": "forged"})

        assert fake_idp.calls("POST") == []
        # State is single use even when the attempt fails
        assert "idp_state" not in browser_session

    @pytest.mark.asyncio
    async def test_missing_code_is_rejected(self, fake_idp: FakeIdp, browser_session):
        client = make_client(browser_session)
        params = fake_idp.authorize(await client.build_authorize_url(REDIRECT_URI))

        with pytest.raises(TokenValidationError):
            await client.exchange_authorization_code({"state": params["state"]})

    @pytest.mark.asyncio
    async def test_callback_without_pending_login(self, fake_idp: FakeIdp, browser_session):
        with pytest.raises(TokenValidationError):
            await make_client(browser_session).exchange_authorization_code(
                {"code": "c", "state": "s"}
            )

    @pytest.mark.asyncio
    async def test_state_without_callback_uri_is_rejected(
        self, fake_idp: FakeIdp, browser_session
    ):
        client = make_client(browser_session)
        state = client.issue("state")

        with pytest.raises(TokenValidationError):
            await client.exchange_authorization_code({"code": "c", "state": state})

        assert fake_idp.calls("POST") == []

    @pytest.mark.asyncio
    async def test_inline_request_exchanges_without_verifier(
        self, fake_idp: FakeIdp, browser_session
    ):
        client = make_client(browser_session)
        client.expect_callback(REDIRECT_URI)
        state = client.issue("state")

        await client.exchange_authorization_code({"code": "auth-code", "state": state})

        _, _, kwargs = fake_idp.calls("POST", TOKEN_URL)[0]
        assert kwargs["data"]["redirect_uri"] == REDIRECT_URI
        assert "code_verifier" not in kwargs["data"]

    @pytest.mark.asyncio
    async def test_token_endpoint_error_propagates(self, fake_idp: FakeIdp, browser_session):
        fake_idp.token_status = 400
        client = make_client(browser_session)
        params = fake_idp.authorize(await client.build_authorize_url(REDIRECT_URI))

        with pytest.raises(httpx.HTTPStatusError):
            await client.exchange_authorization_code(params)

    @pytest.mark.asyncio
    async def test_user_info_and_refresh_token(self, fake_idp: FakeIdp, browser_session):
        fake_idp.refresh_token = "refresh-1"
        client = make_client(browser_session)
        params = fake_idp.authorize(await client.build_authorize_url(REDIRECT_URI))
        await client.exchange_authorization_code(params)

        user_info = await client.get_user_info()

        assert user_info["sub"] == "idp|1"
        assert client.get_refresh_token() == "refresh-1"
        _, _, kwargs = fake_idp.calls("GET", f"https://{DOMAIN}/userinfo")[0]
        assert kwargs["headers"]["Authorization"] == "Bearer user-access-token"

    @pytest.mark.asyncio
    async def test_user_info_requires_exchange(self, browser_session):
        with pytest.raises(TokenValidationError):
            await make_client(browser_session).get_user_info()

    @pytest.mark.asyncio
    async def test_logout_drops_tokens(self, fake_idp: FakeIdp, browser_session):
        client = make_client(browser_session)
        params = fake_idp.authorize(await client.build_authorize_url(REDIRECT_URI))
        await client.exchange_authorization_code(params)

        client.logout()

        assert client.get_id_token() is None
        assert client.get_access_token() is None


class TestIdTokenVerification:
    """Test ID token verification."""

    @pytest.mark.asyncio
    async def test_valid_token(self, fake_idp: FakeIdp, browser_session):
        client = make_client(browser_session)
        params = fake_idp.authorize(await client.build_authorize_url(REDIRECT_URI))
        await client.exchange_authorization_code(params)

        claims = await client.decode_and_verify(client.get_id_token())

        assert claims["sub"] == "idp|1"
        assert claims["nonce"] == fake_idp.nonce

    @pytest.mark.asyncio
    async def test_nonce_mismatch(self, fake_idp: FakeIdp, browser_session):
        client = make_client(browser_session)
        fake_idp.authorize(await client.build_authorize_url(REDIRECT_URI))
        params = {"code": "auth-code", "state": browser_session["idp_state"]}
        fake_idp.nonce = "replayed-nonce"
        await client.exchange_authorization_code(params)

        with pytest.raises(TokenValidationError):
            await client.decode_and_verify(client.get_id_token())

    @pytest.mark.parametrize(
        "claims,key",
        [
            ({"sub": "idp|1", "iss": "https://evil.example.com/"}, CLIENT_SECRET),
            ({"sub": "idp|1", "aud": "another-client"}, CLIENT_SECRET),
            ({"sub": "idp|1", "exp": 1000}, CLIENT_SECRET),
            ({"sub": "idp|1"}, "a-different-signing-secret-0123456789"),
        ],
    )
    @pytest.mark.asyncio
    async def test_invalid_tokens(self, browser_session, claims, key):
        token = make_id_token(claims, key=key)

        with pytest.raises(TokenValidationError):
            await make_client(browser_session).decode_and_verify(token)

    @pytest.mark.asyncio
    async def test_algorithm_allowlist(self, fake_idp: FakeIdp, browser_session):
        """An HS256 token must not verify when RS256 is configured."""
        fake_idp.discovery = None
        client = make_client(browser_session, jwt_signing_algorithm="RS256")
        token = make_id_token({"sub": "idp|1"})

        with pytest.raises((TokenValidationError, httpx.HTTPError, ValueError)):
            await client.decode_and_verify(token)
