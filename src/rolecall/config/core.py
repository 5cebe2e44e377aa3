# src/rolecall/config/core.py

"""Core configuration schema and resolution for rolecall.

- Single source of truth for configuration schema (Settings)
- Pure layered resolution: defaults < home < project < env < overrides
- Role lookups the orchestrator consumes as plain inputs
"""

from __future__ import annotations

from functools import cache
from pathlib import Path
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field, ValidationError, field_validator

from rolecall.errors import ConfigurationError
from rolecall.roles import Role

from .utils import deep_merge

if TYPE_CHECKING:
    from collections.abc import Mapping

# --- Schema (Pydantic wall) ---


class RoleSettings(BaseModel):
    """Backend, model and invocation defaults for one role."""

    provider: str | None = None
    model_id: str | None = None
    max_tokens: int | None = Field(default=None, gt=0)
    temperature: float | None = Field(default=None, ge=0.0, le=2.0)
    base_url: str | None = None

    model_config = {"extra": "forbid", "frozen": True}

    @field_validator("provider", "model_id", "base_url", mode="before")
    @classmethod
    def blank_to_none(cls, v: Any) -> Any:
        """Trim surrounding whitespace; map empty strings to None."""
        if isinstance(v, str):
            v = v.strip()
            return v or None
        return v


class CostSpec(BaseModel):
    """Per-million-token prices for one model."""

    input: float = Field(default=0.0, ge=0.0)
    output: float = Field(default=0.0, ge=0.0)
    currency: str = "USD"

    model_config = {"frozen": True}


def _default_models() -> dict[Role, RoleSettings]:
    return {
        Role.PRIMARY: RoleSettings(
            provider="anthropic",
            model_id="claude-3-7-sonnet-20250219",
            max_tokens=64000,
            temperature=0.2,
        ),
        Role.RESEARCH: RoleSettings(
            provider="perplexity",
            model_id="sonar-pro",
            max_tokens=8700,
            temperature=0.1,
        ),
        Role.FALLBACK: RoleSettings(
            provider="anthropic",
            model_id="claude-3-5-sonnet-20241022",
            max_tokens=8192,
            temperature=0.1,
        ),
    }


class Settings(BaseModel):
    """Pydantic settings schema for configuration validation and defaults.

    All configuration resolution flows through this schema wall; the
    orchestrator only ever reads a validated, frozen instance.
    """

    models: dict[Role, RoleSettings] = Field(default_factory=_default_models)
    debug: bool = False
    user_id: str = "1234567890"
    ollama_base_url: str = "http://localhost:11434/v1"
    azure_base_url: str | None = None
    vertex_project_id: str | None = None
    vertex_location: str = "us-central1"
    aws_region: str = "us-east-1"
    # provider -> model id -> prices
    costs: dict[str, dict[str, CostSpec]] = Field(default_factory=dict)

    model_config = {"extra": "ignore", "frozen": True}

    @field_validator("models", mode="before")
    @classmethod
    def normalize_role_keys(cls, v: Any) -> Any:
        """Accept role names in any case and reject unknown roles."""
        if not isinstance(v, dict):
            return v
        return {Role.coerce(k): spec for k, spec in v.items()}

    def role(self, role: Role | str) -> RoleSettings:
        """Return the settings for *role* (empty settings when unmapped)."""
        return self.models.get(Role.coerce(role), RoleSettings())

    def parameters_for_role(self, role: Role | str) -> dict[str, Any]:
        """Return invocation defaults for *role*, omitting unset values."""
        spec = self.role(role)
        params: dict[str, Any] = {}
        if spec.max_tokens is not None:
            params["max_tokens"] = spec.max_tokens
        if spec.temperature is not None:
            params["temperature"] = spec.temperature
        return params

    def base_url_for_role(self, role: Role | str) -> str | None:
        """Return the per-role base URL override, if any."""
        return self.role(role).base_url


# Defaults are dumped once per process.
@cache
def _default_settings() -> dict[str, Any]:
    return Settings().model_dump(mode="json")


# --- Public resolution API ---


def resolve_settings(
    project_root: Path | str | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> Settings:
    """Resolve configuration from all sources into a frozen Settings.

    Precedence: defaults < home < project < env < overrides. Nested tables
    (``models``, ``costs``) merge key by key, so a project may override only
    the provider of one role.

    Args:
        project_root: Directory holding pyproject.toml. Detected when None.
        overrides: Programmatic configuration overrides.

    Returns:
        Validated, immutable Settings.

    Raises:
        ConfigurationError: If configuration validation fails.
    """
    from .loaders import load_env, load_home, load_pyproject

    merged: dict[str, Any] = dict(_default_settings())
    for layer in (
        load_home(),
        load_pyproject(project_root),
        load_env(),
        overrides or {},
    ):
        merged = deep_merge(merged, layer)

    try:
        return Settings.model_validate(merged)
    except ConfigurationError:
        raise
    except ValidationError as e:
        err = e.errors()[0]
        msg = err.get("msg") or "invalid value"
        # Remove "Value error, " prefix if present (Pydantic standard wrapper)
        if msg.startswith("Value error, "):
            msg = msg[13:]
        location = ".".join(str(part) for part in err.get("loc", ()))
        raise ConfigurationError(
            f"Configuration validation failed at {location or '<root>'}: {msg}",
            hint="Check [tool.rolecall] in pyproject.toml and ROLECALL_* variables.",
        ) from e
