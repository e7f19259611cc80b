from datetime import UTC, datetime
from typing import Any

from sqlalchemy import JSON, Column, DateTime, String
from sqlmodel import Field, SQLModel


def utc_now():
    """Return current UTC datetime."""
    return datetime.now(UTC)


class UserRow(SQLModel, table=True):
    """Persistence model for local user accounts."""

    id: str = Field(primary_key=True)
    username: str = Field(sa_column=Column(String(255), nullable=False, unique=True, index=True))
    email: str | None = Field(default=None, sa_column=Column(String(255), nullable=True, index=True))
    roles: list[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    status: bool = True
    password_hash: str | None = None
    profile: dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))
    last_login_at: datetime | None = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True)
    )
    created_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
    updated_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
