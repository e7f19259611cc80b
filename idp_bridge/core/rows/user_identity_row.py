from datetime import datetime

from sqlalchemy import Column, DateTime, String, UniqueConstraint
from sqlmodel import Field, SQLModel

from idp_bridge.core.rows.user_row import utc_now


class UserIdentityRow(SQLModel, table=True):
    """Persistence model mapping external identities to user accounts."""

    __table_args__ = (
        UniqueConstraint("provider", "subject", name="uq_identity_provider_subject"),
    )

    id: str = Field(primary_key=True)
    provider: str = Field(sa_column=Column(String(128), nullable=False, index=True))
    subject: str = Field(sa_column=Column(String(512), nullable=False, index=True))
    user_id: str = Field(foreign_key="userrow.id", index=True)
    created_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
