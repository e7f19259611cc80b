"""Parsing of the `external|local` mapping rule text.

Both rule sets are written one pair per line. Malformed lines (no `|`, or an empty
side after trimming) are dropped. When a key repeats, the last line wins.
"""

from __future__ import annotations

from collections.abc import Iterator

from loguru import logger

RULE_SEPARATOR = "|"

# Local fields that claims mapping must never write to.
RESERVED_PROFILE_FIELDS: frozenset[str] = frozenset(
    {
        "id",
        "uid",
        "uuid",
        "init",
        "name",
        "username",
        "pass",
        "password_hash",
        "roles",
        "status",
        "external_uid",
    }
)

_RESERVED_NORMALIZED = frozenset(f.replace("_", "") for f in RESERVED_PROFILE_FIELDS)


def is_reserved_field(field_name: str) -> bool:
    """True for identity-critical local fields, ignoring case and underscores."""
    return field_name.replace("_", "").lower() in _RESERVED_NORMALIZED


def _iter_rule_pairs(text: str | None) -> Iterator[tuple[str, str]]:
    if not text:
        return
    for line in text.strip().splitlines():
        parts = line.strip().split(RULE_SEPARATOR, 1)
        if len(parts) != 2:
            if line.strip():
                logger.debug("Dropping mapping line without separator")
            continue
        external, local = parts[0].strip(), parts[1].strip()
        if not external or not local:
            logger.debug("Dropping mapping line with an empty side")
            continue
        yield external, local


def parse_role_mapping(text: str | None) -> dict[str, list[str]]:
    """Parse role mapping text into `{external_role: [local_role]}`."""
    rules: dict[str, list[str]] = {}
    for external_role, local_role in _iter_rule_pairs(text):
        if external_role in rules:
            logger.debug(f"Role mapping for '{external_role}' redefined; last line wins")
        rules[external_role] = [local_role]
    return rules


def parse_field_mapping(text: str | None) -> dict[str, str]:
    """Parse claim mapping text into `{external_claim: local_field}`.

    Lines targeting a reserved local field are dropped.
    """
    rules: dict[str, str] = {}
    for claim, field in _iter_rule_pairs(text):
        if is_reserved_field(field):
            logger.debug(f"Dropping claim mapping to reserved field '{field}'")
            continue
        if claim in rules:
            logger.debug(f"Claim mapping for '{claim}' redefined; last line wins")
        rules[claim] = field
    return rules


def serialize_role_mapping(rules: dict[str, list[str]]) -> str:
    """Render role rules back to mapping text, one line per local role."""
    return "\n".join(
        f"{external}{RULE_SEPARATOR}{local}"
        for external, locals_ in rules.items()
        for local in locals_
    )


def serialize_field_mapping(rules: dict[str, str]) -> str:
    """Render claim rules back to mapping text."""
    return "\n".join(
        f"{claim}{RULE_SEPARATOR}{field}" for claim, field in rules.items()
    )
