"""Translation of an external identity into local roles, profile fields and a username.

Every function here is pure: no configuration lookups, no I/O. Callers pass in the
rule sets they parsed from configuration.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from idp_bridge.core.models.identity import ExternalIdentity
from idp_bridge.core.models.mapping import is_reserved_field


def map_roles(
    identity: ExternalIdentity, role_rules: Mapping[str, list[str]]
) -> set[str]:
    """Map the identity's `roles` claim onto local role identifiers.

    External roles without a rule are ignored. An empty rule set maps to nothing.
    """
    if not role_rules:
        return set()

    mapped: set[str] = set()
    for external_role in identity.roles:
        mapped.update(role_rules.get(external_role, ()))
    return mapped


def map_profile_fields(
    identity: ExternalIdentity, field_rules: Mapping[str, str]
) -> dict[str, Any]:
    """Map claims onto local profile fields.

    Absent, null and empty-string claims are skipped. Structured values (lists,
    objects) pass through unmodified. Reserved local fields are never emitted.
    """
    mapped: dict[str, Any] = {}
    for claim, field in field_rules.items():
        if is_reserved_field(field):
            continue
        value = identity.get(claim)
        if value is None or value == "":
            continue
        mapped[field] = value
    return mapped


def select_username(identity: ExternalIdentity, username_claim: str) -> str | None:
    """Return the username candidate, or None when the claim is missing or empty."""
    value = identity.get(username_claim)
    if value is None:
        return None
    username = str(value).strip()
    return username or None


def sort_roles(roles: set[str]) -> list[str]:
    """Stable ordering for persisting a role set."""
    return sorted(roles)
