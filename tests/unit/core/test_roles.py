"""Role parsing and the fixed escalation sequence."""

from __future__ import annotations

import pytest

from rolecall.errors import ConfigurationError
from rolecall.roles import Role, attempt_sequence

pytestmark = pytest.mark.unit


@pytest.mark.parametrize(
    ("requested", "expected"),
    [
        ("primary", (Role.PRIMARY, Role.FALLBACK)),
        ("research", (Role.RESEARCH,)),
        ("fallback", (Role.FALLBACK,)),
    ],
)
def test_attempt_sequence_is_fixed_per_role(requested, expected):
    assert attempt_sequence(requested) == expected


def test_only_primary_escalates():
    for role in Role:
        sequence = attempt_sequence(role)
        assert sequence[0] is role
        if role is not Role.PRIMARY:
            assert sequence == (role,)


@pytest.mark.parametrize("value", ["PRIMARY", " Research ", Role.FALLBACK])
def test_coerce_accepts_names_case_insensitively(value):
    assert isinstance(Role.coerce(value), Role)


@pytest.mark.parametrize("value", ["main", "", None, 3])
def test_coerce_rejects_unknown_roles(value):
    with pytest.raises(ConfigurationError) as exc_info:
        Role.coerce(value)
    assert exc_info.value.hint is not None
