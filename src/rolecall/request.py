"""Request normalization for the three entry operations."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

from rolecall.config import find_project_root
from rolecall.errors import ConfigurationError
from rolecall.providers.models import Operation
from rolecall.roles import Role

if TYPE_CHECKING:
    from collections.abc import Mapping

    from rolecall.credentials import Session
    from rolecall.telemetry import OutputMode

DEFAULT_OBJECT_NAME = "generated_object"
DEFAULT_OBJECT_MAX_RETRIES = 3
_OUTPUT_MODES = ("cli", "mcp")


@dataclass(frozen=True)
class ServiceRequest:
    """Normalized request ready for orchestration."""

    operation: Operation
    role: Role
    command_name: str
    project_root: Path
    prompt: str | None = None
    system_prompt: str | None = None
    session: Session | Mapping[str, Any] | None = None
    output_mode: OutputMode = "cli"
    extra_params: Mapping[str, Any] = field(default_factory=dict)
    schema: Any = None
    object_name: str | None = None
    max_retries: int | None = None


def normalize_request(
    operation: Operation,
    *,
    role: Role | str,
    command_name: str,
    prompt: str | None = None,
    system_prompt: str | None = None,
    session: Session | Mapping[str, Any] | None = None,
    project_root: Path | str | None = None,
    output_mode: OutputMode = "cli",
    schema: Any = None,
    object_name: str | None = None,
    max_retries: int | None = None,
    extra_params: Mapping[str, Any] | None = None,
) -> ServiceRequest:
    """Validate caller input and fill defaults.

    Raises:
        ConfigurationError: If the input is unusable. These are caller
            errors, raised before any role is attempted.
    """
    if not isinstance(command_name, str) or not command_name.strip():
        raise ConfigurationError(
            "command_name is required",
            hint="Pass the name of the command making the call; it is used for telemetry.",
        )
    if output_mode not in _OUTPUT_MODES:
        raise ConfigurationError(
            f"Unknown output_mode: {output_mode!r}",
            hint="Use 'cli' or 'mcp'.",
        )
    for label, value in (("prompt", prompt), ("system_prompt", system_prompt)):
        if value is not None and not isinstance(value, str):
            raise ConfigurationError(f"{label} must be a string, got {type(value).__name__}")
    if not prompt and not system_prompt:
        raise ConfigurationError(
            "prompt is empty",
            hint="Pass a non-empty prompt (or at least a system_prompt).",
        )

    is_object = operation is Operation.GENERATE_OBJECT
    if is_object:
        if schema is None:
            raise ConfigurationError(
                "schema is required for generate_object",
                hint="Pass a pydantic model class or a JSON schema dict.",
            )
        object_name = object_name or DEFAULT_OBJECT_NAME
        max_retries = DEFAULT_OBJECT_MAX_RETRIES if max_retries is None else max_retries
        if not isinstance(max_retries, int) or max_retries < 0:
            raise ConfigurationError(
                f"max_retries must be a non-negative integer, got {max_retries!r}"
            )

    return ServiceRequest(
        operation=operation,
        role=Role.coerce(role),
        command_name=command_name.strip(),
        project_root=(
            Path(project_root) if project_root is not None else find_project_root()
        ),
        prompt=prompt or None,
        system_prompt=system_prompt or None,
        session=session,
        output_mode=output_mode,
        extra_params=dict(extra_params or {}),
        schema=schema if is_object else None,
        object_name=object_name if is_object else None,
        max_retries=max_retries if is_object else None,
    )
