"""Reconciliation of an external identity with the local user store."""

from typing import Any

from loguru import logger

from idp_bridge.core.entities.user import User
from idp_bridge.core.exceptions import UserProvisionError
from idp_bridge.core.models.identity import ExternalIdentity
from idp_bridge.core.models.mapping import is_reserved_field
from idp_bridge.core.services.claims_mapping import (
    map_profile_fields,
    map_roles,
    select_username,
    sort_roles,
)
from idp_bridge.core.services.external_auth_service import ExternalAuth
from idp_bridge.runtime.config.config_data import IdpSettings

PROVIDER = "external-idp"


class UserProvisionService:
    """Find-or-create the local user for an external identity and apply sync policy."""

    def __init__(self, external_auth: ExternalAuth, settings: IdpSettings) -> None:
        self._external_auth = external_auth
        self._settings = settings

    def find_user(self, subject: str) -> User | None:
        return self._external_auth.load(subject, PROVIDER)

    def login(self, identity: ExternalIdentity) -> User | None:
        """Log in (or register) the local user bound to `identity`.

        Returns None without touching the store when the identity has no subject.

        Raises:
            UserProvisionError: If a new user has no usable username claim
            UserStoreError: If the user store rejects a create or update
        """
        subject = identity.subject
        if not subject:
            logger.warning("External identity has no subject; skipping user reconciliation")
            return None

        user = self._external_auth.login(subject, PROVIDER)
        if user is not None:
            return self._sync_existing_user(user, identity)
        return self._register_new_user(identity, subject)

    def _compute_roles(self, identity: ExternalIdentity) -> list[str]:
        roles = map_roles(identity, self._settings.role_mapping)
        if not roles and self._settings.default_role:
            roles = {self._settings.default_role}
        return sort_roles(roles)

    def _sync_existing_user(self, user: User, identity: ExternalIdentity) -> User:
        changed = False

        if self._settings.role_mapping and self._settings.sync_role_mapping:
            user.roles = self._compute_roles(identity)
            changed = True

        if self._settings.claim_mapping and self._settings.sync_claim_mapping:
            for field, value in map_profile_fields(
                identity, self._settings.claim_mapping
            ).items():
                if not User.is_assignable(field):
                    logger.debug(f"Skipping protected field '{field}' during claim sync")
                    continue
                user.set_field(field, value)
            changed = True

        if changed:
            user = self._external_auth.save(user)
            logger.info(f"Synced user {user.username} from external identity")
        return user

    def _register_new_user(self, identity: ExternalIdentity, subject: str) -> User:
        username = select_username(identity, self._settings.username_claim)
        if not username:
            raise UserProvisionError(
                f"Claim '{self._settings.username_claim}' is required to create a user"
            )

        account_data: dict[str, Any] = {
            "username": username,
            "email": identity.email,
            "roles": self._compute_roles(identity),
        }
        account_data.update(
            (field, value)
            for field, value in map_profile_fields(
                identity, self._settings.claim_mapping
            ).items()
            if not is_reserved_field(field)
        )

        user = self._external_auth.register(account_data, subject, PROVIDER)
        logger.info(f"Provisioned user {user.username} for subject {subject}")
        return self._external_auth.user_login_finalize(user, subject, PROVIDER)
