"""Value objects shared across the login flow."""

from .identity import ExternalIdentity
from .mapping import (
    RESERVED_PROFILE_FIELDS,
    is_reserved_field,
    parse_field_mapping,
    parse_role_mapping,
    serialize_field_mapping,
    serialize_role_mapping,
)

__all__ = [
    "ExternalIdentity",
    "RESERVED_PROFILE_FIELDS",
    "is_reserved_field",
    "parse_field_mapping",
    "parse_role_mapping",
    "serialize_field_mapping",
    "serialize_role_mapping",
]
