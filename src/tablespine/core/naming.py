"""Identifier naming helpers shared by the config layer and the ORM."""

from __future__ import annotations

import re

_WORD_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])")


def snake_case(name: str) -> str:
    """Convert a camelCase or PascalCase identifier to snake_case.

    Acronym runs stay together::

        >>> snake_case("playerUUIDString")
        'player_uuid_string'
        >>> snake_case("PlayerLog")
        'player_log'
        >>> snake_case("already_snake")
        'already_snake'
    """
    return _WORD_BOUNDARY.sub("_", name).lower()


__all__ = ["snake_case"]
