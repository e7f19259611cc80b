from sqlmodel import Session, select

from idp_bridge.core.entities.user import User
from idp_bridge.core.entities.user_identity import UserIdentity
from idp_bridge.core.rows.user_identity_row import UserIdentityRow
from idp_bridge.core.rows.user_row import UserRow, utc_now


class UserRepository:
    """Data-access layer for users."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def get(self, user_id: str) -> User | None:
        row = self._session.get(UserRow, user_id)
        if row is None:
            return None
        return User.model_validate(row, from_attributes=True)

    def get_by_username(self, username: str) -> User | None:
        statement = select(UserRow).where(UserRow.username == username)
        row = self._session.exec(statement).first()
        if row is None:
            return None
        return User.model_validate(row, from_attributes=True)

    def create(self, user: User) -> User:
        row = UserRow(**user.model_dump())
        self._session.add(row)
        self._session.flush()
        return User.model_validate(row, from_attributes=True)

    def update(self, user: User) -> User:
        row = self._session.get(UserRow, user.id)
        if row is None:
            raise ValueError(f"User {user.id} does not exist")

        row.email = user.email
        row.status = user.status
        # Assign fresh containers so the JSON columns are flagged dirty.
        row.roles = list(user.roles)
        row.profile = dict(user.profile)
        row.last_login_at = user.last_login_at
        row.updated_at = utc_now()
        self._session.add(row)
        self._session.flush()
        return User.model_validate(row, from_attributes=True)


class UserIdentityRepository:
    """Data-access layer for user identities."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def get_by_provider_subject(
        self, provider: str, subject: str
    ) -> UserIdentity | None:
        statement = select(UserIdentityRow).where(
            (UserIdentityRow.provider == provider) & (UserIdentityRow.subject == subject)
        )
        row = self._session.exec(statement).first()
        if row is None:
            return None
        return UserIdentity.model_validate(row, from_attributes=True)

    def create(self, identity: UserIdentity) -> UserIdentity:
        row = UserIdentityRow(**identity.model_dump(exclude={"updated_at"}))
        self._session.add(row)
        self._session.flush()
        return UserIdentity.model_validate(row, from_attributes=True)
