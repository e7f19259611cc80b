"""IdP management API client used to look up a user's role assignments."""

import time
from typing import Any
from urllib.parse import quote

import httpx
from cachetools import TTLCache
from loguru import logger
from pydantic import BaseModel

from idp_bridge.core.exceptions import RoleMappingError
from idp_bridge.core.services.telemetry import client_info_headers
from idp_bridge.runtime.config.config_data import IdpSettings

# Leave a margin so a token is never used right at its expiry.
TOKEN_EXPIRY_MARGIN_SECONDS = 60

_TOKEN_CACHE: TTLCache[tuple[str, str], "ManagementToken"] = TTLCache(
    maxsize=10, ttl=24 * 3600
)


class ManagementToken(BaseModel):
    """Client-credentials token for the management API."""

    access_token: str
    expires_at: float

    @property
    def is_expired(self) -> bool:
        return time.time() >= self.expires_at - TOKEN_EXPIRY_MARGIN_SECONDS


def clear_token_cache() -> None:
    _TOKEN_CACHE.clear()


class IdpManagementClient:
    """Client-credentials access to the tenant's management API."""

    def __init__(self, settings: IdpSettings, timeout: float = 10.0) -> None:
        self._settings = settings
        self._timeout = timeout

    @property
    def _api_base(self) -> str:
        # The management API is only served from the canonical tenant domain.
        return f"https://{self._settings.domain}/api/v2"

    def _http_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._timeout, headers=client_info_headers())

    async def get_access_token(self) -> str:
        """Return a cached management token, requesting a new one when needed."""
        cache_key = (self._settings.domain, self._settings.client_id)
        cached = _TOKEN_CACHE.get(cache_key)
        if cached is not None and not cached.is_expired:
            return cached.access_token

        token_data = {
            "grant_type": "client_credentials",
            "client_id": self._settings.client_id,
            "client_secret": self._settings.client_secret,
            "audience": f"{self._api_base}/",
        }

        async with self._http_client() as client:
            response = await client.post(
                f"https://{self._settings.domain}/oauth/token", data=token_data
            )
            response.raise_for_status()
            payload = response.json()

        token = ManagementToken(
            access_token=payload["access_token"],
            expires_at=time.time() + int(payload.get("expires_in", 86400)),
        )
        _TOKEN_CACHE[cache_key] = token
        logger.debug("Obtained a new management API token")
        return token.access_token

    async def get_user_roles(self, user_id: str) -> list[dict[str, Any]]:
        """Return the role assignments of `user_id` as the API reports them.

        Raises:
            RoleMappingError: If the token request or the role lookup fails
        """
        try:
            access_token = await self.get_access_token()
            async with self._http_client() as client:
                response = await client.get(
                    f"{self._api_base}/users/{quote(user_id, safe='')}/roles",
                    headers={"Authorization": f"Bearer {access_token}"},
                )
                response.raise_for_status()
                roles = response.json()
        except (httpx.HTTPError, KeyError, ValueError) as e:
            raise RoleMappingError(
                f"Role lookup failed: {e}",
                external_user_id=user_id,
                context={"domain": self._settings.domain},
            ) from e

        if not isinstance(roles, list):
            raise RoleMappingError(
                "Role lookup returned an unexpected payload", external_user_id=user_id
            )
        return roles
