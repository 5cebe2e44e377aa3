"""rolecall: role-based AI calls with retry, backend fallback and cost accounting.

Public API:
    - generate_text(): Complete text from the backend serving a role
    - stream_text(): Stream text from the backend serving a role
    - generate_object(): Structured, schema-validated output
    - log_ai_usage(): Token/cost record for a completed call
    - RoleRouter: Injectable form (custom registry, settings, retry policy)
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from rolecall.costs import CostEntry, CostTable
from rolecall.credentials import Session
from rolecall.errors import (
    AllRolesExhaustedError,
    APIError,
    ConfigurationError,
    MissingCredentialError,
    NotConfiguredError,
    RateLimitError,
    RolecallError,
)
from rolecall.orchestrator import RoleRouter
from rolecall.providers.models import ObjectResult, TextResult, TextStream, Usage
from rolecall.retry import RetryPolicy
from rolecall.roles import Role
from rolecall.telemetry import TelemetryRecord

if TYPE_CHECKING:
    from collections.abc import Mapping
    from pathlib import Path

    from rolecall.telemetry import OutputMode

try:
    from importlib.metadata import PackageNotFoundError, version

    __version__ = version("rolecall")
except PackageNotFoundError:
    __version__ = "0.0.0+unknown"

# Library-level NullHandler: stay silent unless the consumer configures logging.
logging.getLogger("rolecall").addHandler(logging.NullHandler())

_router: RoleRouter | None = None


def _get_router() -> RoleRouter:
    """Return the process-wide router, built on first use."""
    global _router
    if _router is None:
        _router = RoleRouter()
    return _router


async def generate_text(
    *,
    role: Role | str,
    command_name: str,
    prompt: str | None = None,
    system_prompt: str | None = None,
    session: Session | Mapping[str, Any] | None = None,
    project_root: Path | str | None = None,
    output_mode: OutputMode = "cli",
    **extra_params: Any,
) -> TextResult:
    """Generate text with the backend configured for *role*.

    ``primary`` falls back to ``fallback``; other roles do not escalate.
    Extra keyword arguments (``top_p``, ``max_tokens``, ...) override the
    role's configured parameters.

    Returns:
        TextResult with the text, usage, and the role/provider/model used.

    Raises:
        ConfigurationError: If the request itself is invalid.
        AllRolesExhaustedError: If every candidate role failed or was skipped.

    Example:
        result = await generate_text(
            role="primary", prompt="Summarize the README", command_name="summarize"
        )
        print(result.text, result.usage.total_tokens)
    """
    return await _get_router().generate_text(
        role=role,
        command_name=command_name,
        prompt=prompt,
        system_prompt=system_prompt,
        session=session,
        project_root=project_root,
        output_mode=output_mode,
        **extra_params,
    )


async def stream_text(
    *,
    role: Role | str,
    command_name: str,
    prompt: str | None = None,
    system_prompt: str | None = None,
    session: Session | Mapping[str, Any] | None = None,
    project_root: Path | str | None = None,
    output_mode: OutputMode = "cli",
    **extra_params: Any,
) -> TextStream:
    """Open a text stream with the backend configured for *role*.

    Retry and fallback cover establishing the stream; failures while
    iterating surface to the consumer.

    Example:
        stream = await stream_text(role="research", prompt="...", command_name="research")
        async for delta in stream:
            print(delta, end="")
        print(stream.usage)
    """
    return await _get_router().stream_text(
        role=role,
        command_name=command_name,
        prompt=prompt,
        system_prompt=system_prompt,
        session=session,
        project_root=project_root,
        output_mode=output_mode,
        **extra_params,
    )


async def generate_object(
    *,
    role: Role | str,
    command_name: str,
    schema: Any,
    prompt: str | None = None,
    system_prompt: str | None = None,
    object_name: str = "generated_object",
    max_retries: int = 3,
    session: Session | Mapping[str, Any] | None = None,
    project_root: Path | str | None = None,
    output_mode: OutputMode = "cli",
    **extra_params: Any,
) -> ObjectResult:
    """Generate an object validated against *schema*.

    Args:
        schema: A pydantic model class (result is an instance) or a JSON
            schema dict (result is the parsed dict).
        object_name: Name given to the object/tool on the backend.
        max_retries: Retries the backend SDK may make for this call,
            separate from rolecall's own retry policy.
    """
    return await _get_router().generate_object(
        role=role,
        command_name=command_name,
        schema=schema,
        prompt=prompt,
        system_prompt=system_prompt,
        object_name=object_name,
        max_retries=max_retries,
        session=session,
        project_root=project_root,
        output_mode=output_mode,
        **extra_params,
    )


def log_ai_usage(
    *,
    command_name: str,
    provider_name: str,
    model_id: str,
    input_tokens: int | None,
    output_tokens: int | None,
    user_id: str | None = None,
    output_mode: OutputMode = "cli",
    project_root: Path | None = None,
) -> TelemetryRecord | None:
    """Return a usage/cost record for a completed call, or None on any failure."""
    return _get_router().log_ai_usage(
        command_name=command_name,
        provider_name=provider_name,
        model_id=model_id,
        input_tokens=input_tokens,
        output_tokens=output_tokens,
        user_id=user_id,
        output_mode=output_mode,
        project_root=project_root,
    )


__all__ = [
    "APIError",
    "AllRolesExhaustedError",
    "ConfigurationError",
    "CostEntry",
    "CostTable",
    "MissingCredentialError",
    "NotConfiguredError",
    "ObjectResult",
    "RateLimitError",
    "RetryPolicy",
    "Role",
    "RoleRouter",
    "RolecallError",
    "Session",
    "TelemetryRecord",
    "TextResult",
    "TextStream",
    "Usage",
    "generate_object",
    "generate_text",
    "log_ai_usage",
    "stream_text",
]
