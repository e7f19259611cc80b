"""Unit tests for the identity exchange service."""

from unittest.mock import AsyncMock

import pytest

from idp_bridge.core.exceptions import AuthenticationLoginException
from idp_bridge.core.services.management_client import IdpManagementClient
from idp_bridge.core.services.oidc_client_service import (
    LOGIN_FAILED_MESSAGE,
    OidcClientService,
    normalize_role_name,
)
from idp_bridge.core.services.protocol_client import OidcProtocolClient
from idp_bridge.core.storage import SessionTransientStore
from tests.fixtures.idp import ROLES_PREFIX, TOKEN_URL, FakeIdp
from tests.utils import REDIRECT_URI, make_settings, query_params


def make_service(browser_session: dict, with_management: bool = True, **overrides) -> OidcClientService:
    settings = make_settings(**overrides)
    protocol = OidcProtocolClient(settings, SessionTransientStore(browser_session))
    management = IdpManagementClient(settings) if with_management else None
    return OidcClientService(protocol, settings, REDIRECT_URI, management)


async def callback_params(service: OidcClientService, idp: FakeIdp) -> dict[str, str]:
    return idp.authorize(await service.build_login_url())


class TestNormalizeRoleName:
    @pytest.mark.parametrize(
        "name,expected",
        [("Admin", "admin"), ("Content Editor", "content_editor"), ("  Ops  ", "ops")],
    )
    def test_normalize(self, name, expected):
        assert normalize_role_name(name) == expected


class TestLoginUrl:
    """Test login URL construction."""

    @pytest.mark.asyncio
    async def test_uses_callback_uri(self, fake_idp: FakeIdp, browser_session):
        url = await make_service(browser_session).build_login_url()

        assert query_params(url)["redirect_uri"] == REDIRECT_URI

    @pytest.mark.asyncio
    async def test_return_to_replaces_callback_uri(self, fake_idp: FakeIdp, browser_session):
        url = await make_service(browser_session).build_login_url("http://testserver/alt")

        assert query_params(url)["redirect_uri"] == "http://testserver/alt"
        assert browser_session["idp_redirect_uri"] == "http://testserver/alt"

    def test_issued_values_are_stored(self, browser_session):
        service = make_service(browser_session)

        state = service.get_state()
        nonce = service.get_nonce()

        assert browser_session == {
            "idp_state": state,
            "idp_nonce": nonce,
            "idp_redirect_uri": REDIRECT_URI,
        }

    @pytest.mark.asyncio
    async def test_inline_login_round_trip(self, fake_idp: FakeIdp, browser_session):
        service = make_service(browser_session)
        state = service.get_state()
        fake_idp.nonce = service.get_nonce()

        identity = await service.exchange({"code": "auth-code", "state": state})

        assert identity.subject == "idp|1"
        assert identity.nonce == fake_idp.nonce
        token_data = fake_idp.calls("POST", TOKEN_URL)[0][2]["data"]
        assert token_data["redirect_uri"] == REDIRECT_URI
        assert "code_verifier" not in token_data
        assert browser_session == {}


class TestExchange:
    """Test turning a callback into an identity."""

    @pytest.mark.asyncio
    async def test_successful_exchange(self, fake_idp: FakeIdp, browser_session):
        fake_idp.refresh_token = "refresh-1"
        fake_idp.roles = [{"name": "Admin"}, {"name": "Content Editor"}, {"id": "no-name"}]
        service = make_service(browser_session)

        identity = await service.exchange(await callback_params(service, fake_idp))

        assert identity.subject == "idp|1"
        assert identity.user_id == "idp|1"
        assert identity.nickname == "ab"
        assert identity.roles == ["admin", "content_editor"]
        assert identity.session_id == "sess-1"
        assert identity.nonce == fake_idp.nonce
        assert identity.refresh_token == "refresh-1"
        assert identity.id_token == service._client.get_id_token()

    @pytest.mark.asyncio
    async def test_user_info_claims_win_over_token_claims(self, fake_idp: FakeIdp, browser_session):
        fake_idp.user_info["sid"] = "from-user-info"
        service = make_service(browser_session)

        identity = await service.exchange(await callback_params(service, fake_idp))

        assert identity.session_id == "from-user-info"

    @pytest.mark.asyncio
    async def test_user_id_only_user_info(self, fake_idp: FakeIdp, browser_session):
        fake_idp.user_info = {"user_id": "idp|1", "nickname": "ab"}
        service = make_service(browser_session)

        identity = await service.exchange(await callback_params(service, fake_idp))

        assert identity.subject == "idp|1"

    @pytest.mark.asyncio
    async def test_empty_user_info_returns_none(self, fake_idp: FakeIdp, browser_session):
        fake_idp.user_info = {}
        service = make_service(browser_session)

        assert await service.exchange(await callback_params(service, fake_idp)) is None

    @pytest.mark.asyncio
    async def test_role_lookup_failure_logs_and_continues(
        self, fake_idp: FakeIdp, browser_session, log_records
    ):
        fake_idp.roles_status = 500
        service = make_service(browser_session)

        identity = await service.exchange(await callback_params(service, fake_idp))

        assert identity.roles == []
        assert any(r["level"].name == "ERROR" for r in log_records)

    @pytest.mark.asyncio
    async def test_malformed_role_entries_are_skipped(
        self, fake_idp: FakeIdp, browser_session, log_records
    ):
        fake_idp.roles = ["admin", None, {"name": 7}, {"name": "  "}, {"name": "Editor"}]
        service = make_service(browser_session)

        identity = await service.exchange(await callback_params(service, fake_idp))

        assert identity.subject == "idp|1"
        assert identity.roles == ["editor"]
        assert any(r["level"].name == "WARNING" for r in log_records)

    @pytest.mark.asyncio
    async def test_only_malformed_role_entries(self, fake_idp: FakeIdp, browser_session):
        fake_idp.roles = ["admin"]
        service = make_service(browser_session)

        identity = await service.exchange(await callback_params(service, fake_idp))

        assert identity.roles == []

    @pytest.mark.asyncio
    async def test_roles_not_fetched_when_disabled(self, fake_idp: FakeIdp, browser_session):
        service = make_service(browser_session, fetch_idp_roles=False)

        identity = await service.exchange(await callback_params(service, fake_idp))

        assert "roles" not in identity
        assert fake_idp.calls("GET", ROLES_PREFIX) == []

    @pytest.mark.asyncio
    async def test_roles_not_fetched_without_management_client(
        self, fake_idp: FakeIdp, browser_session
    ):
        service = make_service(browser_session, with_management=False)

        await service.exchange(await callback_params(service, fake_idp))

        assert fake_idp.calls("GET", ROLES_PREFIX) == []

    @pytest.mark.asyncio
    async def test_subject_mismatch_ends_session(self, fake_idp: FakeIdp, browser_session):
        fake_idp.id_token_subject = "idp|someone-else"
        service = make_service(browser_session)
        params = await callback_params(service, fake_idp)

        with pytest.raises(AuthenticationLoginException) as exc_info:
            await service.exchange(params)

        assert exc_info.value.message == "Failed to validate the user token subject."
        assert exc_info.value.error_message == LOGIN_FAILED_MESSAGE
        assert service._client.get_id_token() is None

    @pytest.mark.asyncio
    async def test_state_mismatch_is_a_login_failure(self, fake_idp: FakeIdp, browser_session):
        service = make_service(browser_session)
        await service.build_login_url()

        with pytest.raises(AuthenticationLoginException) as exc_info:
            await service.exchange({"code": "c", "state": "forged"})

        assert exc_info.value.error_message == LOGIN_FAILED_MESSAGE
        assert browser_session == {}

    @pytest.mark.asyncio
    async def test_unexpected_errors_are_wrapped(self, browser_session):
        service = make_service(browser_session)
        service._client.exchange_authorization_code = AsyncMock(
            side_effect=RuntimeError("boom")
        )

        with pytest.raises(AuthenticationLoginException) as exc_info:
            await service.exchange({"code": "c", "state": "s"})

        assert exc_info.value.message == "boom"
        assert isinstance(exc_info.value.__cause__, RuntimeError)
