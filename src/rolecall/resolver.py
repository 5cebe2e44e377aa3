"""Role -> backend binding resolution."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from rolecall.errors import NotConfiguredError
from rolecall.roles import Role

if TYPE_CHECKING:
    from collections.abc import Mapping

    from rolecall.config import Settings
    from rolecall.providers.registry import ProviderRegistry


@dataclass(frozen=True)
class BackendBinding:
    """Backend and model serving one role for one attempt."""

    role: Role
    provider: str
    model_id: str
    base_url: str | None = None
    parameters: Mapping[str, Any] = field(default_factory=dict)


def resolve_binding(
    role: Role | str, settings: Settings, registry: ProviderRegistry
) -> BackendBinding:
    """Look up the backend and model configured for *role*.

    The provider name is normalized to lower case and must name an adapter
    in *registry*.

    Raises:
        NotConfiguredError: If the role lacks a provider or model, or the
            provider is not registered.
    """
    role = Role.coerce(role)
    spec = settings.role(role)

    if not spec.provider or not spec.model_id:
        raise NotConfiguredError(
            f"Role {role.value!r} has no provider/model configured",
            hint=f"Set [tool.rolecall.models.{role.value}] provider and model_id.",
            role=role.value,
            provider=spec.provider,
        )

    provider = spec.provider.lower()
    if registry.get(provider) is None:
        raise NotConfiguredError(
            f"Provider {spec.provider!r} for role {role.value!r} is not configured "
            "or supported",
            hint=f"Supported providers: {', '.join(registry.names())}",
            role=role.value,
            provider=spec.provider,
        )

    return BackendBinding(
        role=role,
        provider=provider,
        model_id=spec.model_id,
        base_url=spec.base_url,
        parameters=settings.parameters_for_role(role),
    )
