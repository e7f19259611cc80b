"""External identity produced by a successful authorization code exchange."""

from __future__ import annotations

import copy
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# Scalar, array or nested object claim values as returned by the IdP.
ClaimValue = str | int | float | bool | list[Any] | dict[str, Any] | None


def _optional_int(value: Any) -> int | None:
    return int(value) if value is not None else None


class ExternalIdentity(BaseModel):
    """Immutable claim set describing the authenticated end user.

    Created once per successful exchange and consumed once by user provisioning.
    Only derived projections (username, roles, profile fields) are ever persisted.
    """

    model_config = ConfigDict(frozen=True)

    claims: dict[str, ClaimValue] = Field(default_factory=dict)
    refresh_token: str | None = Field(default=None, repr=False)
    id_token: str | None = Field(default=None, repr=False)

    @classmethod
    def make(
        cls,
        user_info: Mapping[str, Any],
        refresh_token: str | None = None,
        id_token: str | None = None,
    ) -> ExternalIdentity:
        """Build an identity from a user-info claim set, detached from the caller's copy."""
        return cls(
            claims=copy.deepcopy(dict(user_info)),
            refresh_token=refresh_token,
            id_token=id_token,
        )

    def get(self, key: str, default: Any = None) -> Any:
        """Return a claim value, or `default` when the claim is absent or null."""
        value = self.claims.get(key)
        return default if value is None else value

    def __contains__(self, key: str) -> bool:
        return self.claims.get(key) is not None

    @property
    def subject(self) -> str | None:
        return self.get("sub")

    @property
    def user_id(self) -> str | None:
        return self.get("user_id")

    @property
    def issuer(self) -> str | None:
        return self.get("iss")

    @property
    def audience(self) -> str | list[str] | None:
        return self.get("aud")

    @property
    def issued_at(self) -> int | None:
        return _optional_int(self.get("iat"))

    @property
    def expires_at(self) -> int | None:
        return _optional_int(self.get("exp"))

    @property
    def session_id(self) -> str | None:
        return self.get("sid")

    @property
    def nonce(self) -> str | None:
        return self.get("nonce")

    @property
    def name(self) -> str | None:
        return self.get("name")

    @property
    def nickname(self) -> str | None:
        return self.get("nickname")

    @property
    def email(self) -> str | None:
        return self.get("email")

    @property
    def email_verified(self) -> bool | None:
        verified = self.get("email_verified")
        if verified is None:
            return None
        # Some IdPs send the flag as a string.
        if isinstance(verified, str):
            return verified.strip().lower() == "true"
        return verified is True

    @property
    def picture(self) -> str | None:
        return self.get("picture")

    @property
    def updated_at(self) -> str | None:
        return self.get("updated_at")

    @property
    def roles(self) -> list[str]:
        """Role names attached by the IdP role lookup; empty when none were fetched."""
        roles = self.get("roles", [])
        if isinstance(roles, str):
            return [roles]
        return list(roles)
