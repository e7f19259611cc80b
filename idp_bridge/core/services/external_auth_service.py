"""Local user store as seen by user provisioning."""

from abc import ABC, abstractmethod
from datetime import UTC, datetime
from typing import Any

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from idp_bridge.core.entities.user import User
from idp_bridge.core.entities.user_identity import UserIdentity
from idp_bridge.core.exceptions import UserStoreError
from idp_bridge.core.repositories.user_repo import (
    UserIdentityRepository,
    UserRepository,
)


class ExternalAuth(ABC):
    """Identity-to-account binding and account persistence."""

    @abstractmethod
    def load(self, subject: str, provider: str) -> User | None:
        """Return the user bound to (provider, subject), if any."""

    @abstractmethod
    def login(self, subject: str, provider: str) -> User | None:
        """Load and mark the bound user as logged in."""

    @abstractmethod
    def register(
        self, account_data: dict[str, Any], subject: str, provider: str
    ) -> User:
        """Create a user from `account_data` and bind it to (provider, subject)."""

    @abstractmethod
    def user_login_finalize(self, user: User, subject: str, provider: str) -> User:
        """Ensure the binding exists and record the login."""

    @abstractmethod
    def save(self, user: User) -> User:
        """Persist changes made to an existing user."""


class SqlExternalAuthService(ExternalAuth):
    """`ExternalAuth` on top of the SQLModel user and identity tables."""

    def __init__(self, db_session: Session) -> None:
        self._db_session = db_session
        self._user_repo = UserRepository(db_session)
        self._identity_repo = UserIdentityRepository(db_session)

    def load(self, subject: str, provider: str) -> User | None:
        identity = self._identity_repo.get_by_provider_subject(provider, subject)
        if identity is None:
            return None
        user = self._user_repo.get(identity.user_id)
        if user is None:
            logger.warning(f"Identity {provider}:{subject} points to a missing user")
        return user

    def login(self, subject: str, provider: str) -> User | None:
        user = self.load(subject, provider)
        if user is None:
            return None
        return self._stamp_login(user)

    def register(
        self, account_data: dict[str, Any], subject: str, provider: str
    ) -> User:
        username = account_data.get("username")
        if not username:
            raise UserStoreError("Cannot register a user without a username")

        try:
            if self._user_repo.get_by_username(username) is not None:
                raise UserStoreError(f"Username '{username}' is already taken")

            user = User(
                username=username,
                email=account_data.get("email"),
                roles=list(account_data.get("roles", [])),
                status=account_data.get("status", True),
            )
            for name, value in account_data.items():
                if name in {"username", "email", "roles", "status"}:
                    continue
                if User.is_assignable(name):
                    user.set_field(name, value)

            created = self._user_repo.create(user)
            self._identity_repo.create(
                UserIdentity(provider=provider, subject=subject, user_id=created.id)
            )
            self._db_session.commit()
        except SQLAlchemyError as e:
            self._db_session.rollback()
            logger.error(f"Error registering user {username}: {e}")
            raise UserStoreError(f"Could not register user '{username}'") from e
        except UserStoreError:
            self._db_session.rollback()
            raise

        logger.info(f"Registered user {created.username} for {provider}:{subject}")
        return created

    def user_login_finalize(self, user: User, subject: str, provider: str) -> User:
        try:
            identity = self._identity_repo.get_by_provider_subject(provider, subject)
            if identity is None:
                self._identity_repo.create(
                    UserIdentity(provider=provider, subject=subject, user_id=user.id)
                )
            elif identity.user_id != user.id:
                raise UserStoreError(
                    f"Identity {provider}:{subject} is bound to another user"
                )
        except SQLAlchemyError as e:
            self._db_session.rollback()
            raise UserStoreError(f"Could not bind identity for {user.username}") from e
        return self._stamp_login(user)

    def save(self, user: User) -> User:
        try:
            saved = self._user_repo.update(user)
            self._db_session.commit()
        except (SQLAlchemyError, ValueError) as e:
            self._db_session.rollback()
            logger.error(f"Error saving user {user.username}: {e}")
            raise UserStoreError(f"Could not save user '{user.username}'") from e
        return saved

    def _stamp_login(self, user: User) -> User:
        user.last_login_at = datetime.now(UTC)
        return self.save(user)
