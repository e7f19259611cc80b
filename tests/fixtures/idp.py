"""In-process stand-in for the identity provider's HTTP endpoints."""

from __future__ import annotations

from collections.abc import Generator
from typing import Any
from unittest.mock import MagicMock, patch

import httpx
import pytest

from tests.utils import DOMAIN, ISSUER, json_response, make_id_token, query_params

BASE = f"https://{DOMAIN}"
DISCOVERY_URL = f"{BASE}/.well-known/openid-configuration"
TOKEN_URL = f"{BASE}/oauth/token"
USERINFO_URL = f"{BASE}/userinfo"
ROLES_PREFIX = f"{BASE}/api/v2/users/"


class FakeIdp:
    """Answers discovery, token, userinfo and role lookups like a tenant would."""

    def __init__(self) -> None:
        self.client_cls: MagicMock | None = None
        self.requests: list[tuple[str, str, dict[str, Any]]] = []
        self.discovery: dict[str, Any] | None = {
            "issuer": ISSUER,
            "authorization_endpoint": f"{BASE}/authorize",
            "token_endpoint": TOKEN_URL,
            "userinfo_endpoint": USERINFO_URL,
            "jwks_uri": f"{BASE}/.well-known/jwks.json",
        }
        self.user_info: dict[str, Any] = {
            "sub": "idp|1",
            "nickname": "ab",
            "name": "A B",
            "email": "a@b.com",
            "email_verified": True,
        }
        self.roles: list[Any] = [{"id": "rol_1", "name": "admin"}]
        self.roles_status = 200
        self.token_status = 200
        self.id_token_subject: str | None = None
        self.refresh_token: str | None = None
        self.nonce: str | None = None

    def authorize(self, authorize_url: str, code: str = "auth-code") -> dict[str, str]:
        """Follow the authorize redirect and return the callback query parameters."""
        params = query_params(authorize_url)
        self.nonce = params.get("nonce")
        return {"code": code, "state": params["state"]}

    def calls(self, method: str, prefix: str = "") -> list[tuple[str, str, dict[str, Any]]]:
        return [c for c in self.requests if c[0] == method and c[1].startswith(prefix)]

    async def get(self, url: str, **kwargs: Any) -> httpx.Response:
        self.requests.append(("GET", url, kwargs))
        if url == DISCOVERY_URL:
            if self.discovery is None:
                return json_response("GET", url, {}, status_code=404)
            return json_response("GET", url, self.discovery)
        if url == USERINFO_URL:
            return json_response("GET", url, self.user_info)
        if url.startswith(ROLES_PREFIX):
            return json_response("GET", url, self.roles, status_code=self.roles_status)
        return json_response("GET", url, {"error": "not_found"}, status_code=404)

    async def post(self, url: str, **kwargs: Any) -> httpx.Response:
        self.requests.append(("POST", url, kwargs))
        if url != TOKEN_URL:
            return json_response("POST", url, {"error": "not_found"}, status_code=404)

        data = kwargs.get("data", {})
        if data.get("grant_type") == "client_credentials":
            return json_response(
                "POST", url, {"access_token": "mgmt-token", "expires_in": 86400}
            )

        subject = self.user_info.get("sub") or self.user_info.get("user_id")
        claims = {"sub": self.id_token_subject or subject, "sid": "sess-1"}
        if self.nonce:
            claims["nonce"] = self.nonce
        body: dict[str, Any] = {
            "access_token": "user-access-token",
            "token_type": "Bearer",
            "expires_in": 3600,
            "id_token": make_id_token(claims),
        }
        if self.refresh_token:
            body["refresh_token"] = self.refresh_token
        return json_response("POST", url, body, status_code=self.token_status)


@pytest.fixture
def fake_idp() -> Generator[FakeIdp]:
    """Route every `httpx.AsyncClient` call to a `FakeIdp`."""
    idp = FakeIdp()
    with patch("httpx.AsyncClient") as client_cls:
        client_cls.return_value.__aenter__.return_value = idp
        client_cls.return_value.__aexit__.return_value = False
        idp.client_cls = client_cls
        yield idp
