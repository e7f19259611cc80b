from datetime import UTC, datetime

from pydantic import Field

from idp_bridge.core.entities._base import Entity


class UserIdentity(Entity):
    """Maps an external (provider, subject) pair to an internal user."""

    provider: str = Field(description="Provider name the identity was authenticated by")
    subject: str = Field(description="Stable external user id")
    user_id: str = Field(description="Internal user ID this identity maps to")
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        description="When this identity mapping was created",
    )
