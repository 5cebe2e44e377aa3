"""Per-backend connection fields: credential, endpoint, region, project.

Each backend that needs more than an API key gets one small strategy; the
envelope builder selects it by name and never branches on backend names.
"""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Protocol

from rolecall.credentials import resolve_env_variable
from rolecall.errors import NotConfiguredError

if TYPE_CHECKING:
    from collections.abc import Mapping
    from pathlib import Path

    from rolecall.config import Settings
    from rolecall.credentials import Session
    from rolecall.resolver import BackendBinding


@dataclass(frozen=True)
class ConnectionContext:
    """Inputs a strategy may read besides the binding and credential."""

    settings: Settings
    session: Session | Mapping[str, Any] | None = None
    project_root: Path | None = None


class ConnectionStrategy(Protocol):
    """Builds the backend-specific connection fields for one attempt."""

    def build(
        self, binding: BackendBinding, credential: str, context: ConnectionContext
    ) -> dict[str, Any]:
        """Return connection fields to merge into the envelope."""
        ...


class ApiKeyConnection:
    """Credential only, plus the role's base URL override when configured."""

    def build(
        self, binding: BackendBinding, credential: str, context: ConnectionContext
    ) -> dict[str, Any]:
        """Return ``api_key`` and optional ``base_url``."""
        _ = context
        fields: dict[str, Any] = {"api_key": credential}
        if binding.base_url:
            fields["base_url"] = binding.base_url
        return fields


class OllamaConnection:
    """Local Ollama server; the role override wins over the global base URL."""

    def build(
        self, binding: BackendBinding, credential: str, context: ConnectionContext
    ) -> dict[str, Any]:
        """Return ``api_key`` (possibly empty) and ``base_url``."""
        return {
            "api_key": credential,
            "base_url": binding.base_url or context.settings.ollama_base_url,
        }


class AzureConnection:
    """Azure OpenAI needs a resource endpoint from the role or global settings."""

    def build(
        self, binding: BackendBinding, credential: str, context: ConnectionContext
    ) -> dict[str, Any]:
        """Return ``api_key`` and ``base_url``.

        Raises:
            NotConfiguredError: If no endpoint is configured anywhere.
        """
        base_url = binding.base_url or context.settings.azure_base_url
        if not base_url:
            raise NotConfiguredError(
                f"Azure endpoint missing for role {binding.role.value!r}",
                hint="Set azure_base_url or the role's base_url.",
                role=binding.role.value,
                provider=binding.provider,
            )
        return {"api_key": credential, "base_url": base_url}


class BedrockConnection:
    """AWS credentials: access key id is the credential, the secret is looked up."""

    def build(
        self, binding: BackendBinding, credential: str, context: ConnectionContext
    ) -> dict[str, Any]:
        """Return ``access_key_id``, ``secret_access_key`` and ``region``."""
        secret = resolve_env_variable(
            "AWS_SECRET_ACCESS_KEY", context.session, context.project_root
        )
        fields: dict[str, Any] = {
            "access_key_id": credential,
            "secret_access_key": secret or "",
            "region": resolve_env_variable(
                "AWS_REGION", context.session, context.project_root
            )
            or context.settings.aws_region,
        }
        if binding.base_url:
            fields["base_url"] = binding.base_url
        return fields


class VertexConnection:
    """Vertex AI project and location from settings."""

    def build(
        self, binding: BackendBinding, credential: str, context: ConnectionContext
    ) -> dict[str, Any]:
        """Return ``api_key``, ``project_id`` and ``location``."""
        _ = binding
        settings = context.settings
        return {
            "api_key": credential,
            "project_id": settings.vertex_project_id,
            "location": settings.vertex_location,
        }


DEFAULT_CONNECTION: ConnectionStrategy = ApiKeyConnection()

CONNECTION_STRATEGIES: Mapping[str, ConnectionStrategy] = MappingProxyType(
    {
        "ollama": OllamaConnection(),
        "azure": AzureConnection(),
        "bedrock": BedrockConnection(),
        "vertex": VertexConnection(),
    }
)


def connection_strategy_for(provider: str) -> ConnectionStrategy:
    """Return the strategy registered for *provider*, else the API-key default."""
    return CONNECTION_STRATEGIES.get(provider.lower(), DEFAULT_CONNECTION)
