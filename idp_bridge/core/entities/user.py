from datetime import datetime
from typing import Any

from pydantic import Field

from idp_bridge.core.entities._base import Entity
from idp_bridge.core.models.mapping import is_reserved_field

# Declared attributes that profile data may overwrite; everything else declared
# on the entity is bookkeeping or identity-critical.
_ASSIGNABLE_ATTRIBUTES = frozenset({"email"})


class User(Entity):
    """Local user account that external identities are bound to."""

    username: str = Field(description="Unique account name")
    email: str | None = Field(default=None, description="User's email address")
    roles: list[str] = Field(default_factory=list, description="Local role identifiers")
    status: bool = Field(default=True, description="Whether the account is active")
    password_hash: str | None = Field(
        default=None, description="Local credential hash, unused for IdP logins", repr=False
    )
    profile: dict[str, Any] = Field(
        default_factory=dict, description="Profile fields populated from IdP claims"
    )
    last_login_at: datetime | None = Field(default=None, description="Last successful login")

    @classmethod
    def is_assignable(cls, name: str) -> bool:
        """Whether profile data may write the field `name`."""
        if is_reserved_field(name):
            return False
        return name in _ASSIGNABLE_ATTRIBUTES or name not in cls.model_fields

    def get_field(self, name: str, default: Any = None) -> Any:
        if name in User.model_fields:
            return getattr(self, name)
        return self.profile.get(name, default)

    def set_field(self, name: str, value: Any) -> None:
        """Assign a profile field; `email` is set on the entity, the rest in `profile`.

        Raises:
            ValueError: If `name` is identity-critical or bookkeeping
        """
        if not self.is_assignable(name):
            raise ValueError(f"Field '{name}' cannot be set from profile data")
        if name in _ASSIGNABLE_ATTRIBUTES:
            setattr(self, name, value)
        else:
            self.profile[name] = value
