"""Roles: named purpose slots mapped to a backend and model by configuration."""

from __future__ import annotations

from enum import Enum
from typing import Any

from rolecall.errors import ConfigurationError


class Role(str, Enum):
    """Purpose slot a caller asks for."""

    PRIMARY = "primary"
    RESEARCH = "research"
    FALLBACK = "fallback"

    @classmethod
    def coerce(cls, value: Any) -> Role:
        """Accept a Role or its string value (case-insensitive)."""
        if isinstance(value, Role):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                pass
        raise ConfigurationError(
            f"Unknown role: {value!r}",
            hint="Supported roles: 'primary', 'research', 'fallback'.",
        )


# Only primary escalates; research and fallback are terminal.
_ESCALATIONS: dict[Role, tuple[Role, ...]] = {
    Role.PRIMARY: (Role.FALLBACK,),
}


def attempt_sequence(role: Role | str) -> tuple[Role, ...]:
    """Return the ordered roles to try for a request made with *role*."""
    requested = Role.coerce(role)
    return (requested, *_ESCALATIONS.get(requested, ()))
