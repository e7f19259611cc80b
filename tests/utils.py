import time
from typing import Any
from urllib.parse import parse_qs, urlparse

import httpx
from authlib.jose import jwt

from idp_bridge.runtime.config.config_data import IdpSettings

DOMAIN = "tenant.example.com"
ISSUER = f"https://{DOMAIN}/"
CLIENT_ID = "test-client-id"
CLIENT_SECRET = "test-client-secret-0123456789abcdef"
COOKIE_SECRET = "cookie-secret-0123456789abcdef-0123456789"
REDIRECT_URI = "http://testserver/auth/callback"


def make_settings(**overrides: Any) -> IdpSettings:
    """IdP settings for the test tenant; ID tokens are HS256-signed with the client secret."""
    values: dict[str, Any] = {
        "domain": DOMAIN,
        "client_id": CLIENT_ID,
        "client_secret": CLIENT_SECRET,
        "cookie_secret": COOKIE_SECRET,
        "jwt_signing_algorithm": "HS256",
    }
    values.update(overrides)
    return IdpSettings(**values)


def make_id_token(claims: dict[str, Any], key: str = CLIENT_SECRET) -> str:
    now = int(time.time())
    payload = {"iss": ISSUER, "aud": CLIENT_ID, "iat": now, "exp": now + 300}
    payload.update(claims)
    return jwt.encode({"alg": "HS256"}, payload, key.encode("utf-8")).decode("ascii")


def query_params(url: str) -> dict[str, str]:
    """Single-valued query parameters of `url`."""
    return {key: values[0] for key, values in parse_qs(urlparse(url).query).items()}


def json_response(method: str, url: str, data: Any, status_code: int = 200) -> httpx.Response:
    return httpx.Response(status_code, json=data, request=httpx.Request(method, url))
