"""SQL identifier and role-name validation.

Postgres cannot bind identifiers or role names as parameters, so every
caller-supplied table, column, schema, or role name is validated here and
then interpolated into SQL text in double-quoted form.
"""

from __future__ import annotations

import re

from common.errors import InvalidIdentifier, InvalidRole

IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def _is_plain_identifier(value: str) -> bool:
    return bool(IDENTIFIER_PATTERN.fullmatch(value))


def quote_identifier(identifier: str) -> str:
    """Return a double-quoted identifier, optionally schema-qualified.

    Accepts ``name`` or ``schema.name``; each part must match
    ``IDENTIFIER_PATTERN``.

    Raises:
        InvalidIdentifier: If the value is not a safe identifier.
    """
    if not isinstance(identifier, str) or not identifier:
        raise InvalidIdentifier(f"Invalid identifier: {identifier!r}", value=identifier)

    parts = identifier.split(".")
    if len(parts) > 2:
        raise InvalidIdentifier(f"Invalid identifier: {identifier}", value=identifier)

    for part in parts:
        if not _is_plain_identifier(part):
            if len(parts) == 1:
                raise InvalidIdentifier(f"Invalid identifier: {identifier}", value=identifier)
            raise InvalidIdentifier(
                f"Invalid identifier part: {part!r} in {identifier}", value=identifier
            )

    return ".".join(f'"{part}"' for part in parts)


def validate_role(role: str) -> str:
    """Return the role name unchanged when it is safe for ``SET LOCAL ROLE``.

    Raises:
        InvalidRole: If the role contains anything beyond letters, digits, and underscores.
    """
    if not isinstance(role, str) or not _is_plain_identifier(role):
        raise InvalidRole(f"Invalid role name: {role!r}", value=role)
    return role


def set_local_role_statement(role: str) -> str:
    """Build the transaction-scoped role switch for a validated role."""
    return f'SET LOCAL ROLE "{validate_role(role)}"'
