"""Role-fallback orchestration: try each candidate role in order.

Per request the router walks ``Init -> TryRole(r) -> Success | NextRole``
until a role succeeds or the sequence is exhausted. Roles are attempted
strictly one at a time; retries for one role finish before the next role
starts.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from rolecall.config import resolve_settings
from rolecall.connection import ConnectionContext
from rolecall.costs import CostTable
from rolecall.credentials import resolve_credential
from rolecall.envelope import build_envelope
from rolecall.error_messages import extract_error_message
from rolecall.errors import (
    AllRolesExhaustedError,
    MissingCredentialError,
    NotConfiguredError,
    RolecallError,
)
from rolecall.providers.models import Operation
from rolecall.providers.registry import default_registry
from rolecall.request import normalize_request
from rolecall.resolver import resolve_binding
from rolecall.retry import DEFAULT_RETRY_POLICY, RetryPolicy, retry_async
from rolecall.roles import Role, attempt_sequence
from rolecall.telemetry import log_ai_usage

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable
    from pathlib import Path

    from rolecall.config import Settings
    from rolecall.providers.models import ObjectResult, TextResult, TextStream
    from rolecall.providers.registry import ProviderRegistry
    from rolecall.request import ServiceRequest
    from rolecall.telemetry import OutputMode, TelemetryRecord

logger = logging.getLogger(__name__)

ALL_ROLES_FAILED = "AI service call failed for all configured roles"


class RoleRouter:
    """Route requests to backends by role, with retry and fallback.

    The registry (and a fixed Settings/CostTable, when given) are shared,
    read-only inputs. Everything that changes during a request lives in
    local variables of :meth:`run`, so one router can serve concurrent,
    unrelated requests.
    """

    def __init__(
        self,
        registry: ProviderRegistry | None = None,
        *,
        settings: Settings | None = None,
        settings_loader: Callable[[Path], Settings] = resolve_settings,
        retry_policy: RetryPolicy = DEFAULT_RETRY_POLICY,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """Create a router.

        Args:
            registry: Backend adapters; defaults to the built-in registry.
            settings: Fixed settings; when None they are resolved per
                request for the request's project root.
            settings_loader: Resolver used when *settings* is None.
            retry_policy: Per-role retry policy.
            sleep: Awaitable sleep used for backoff, injectable for tests.
        """
        self.registry = registry if registry is not None else default_registry()
        self._settings = settings
        self._settings_loader = settings_loader
        self.retry_policy = retry_policy
        self._sleep = sleep
        self._cost_table = (
            CostTable.from_settings(settings) if settings is not None else None
        )

    def settings_for(self, project_root: Path) -> Settings:
        """Return the settings that apply to *project_root*."""
        if self._settings is not None:
            return self._settings
        return self._settings_loader(project_root)

    # --- Entry operations ---

    async def generate_text(self, **kwargs: Any) -> TextResult:
        """Generate text for ``role``; see :func:`rolecall.generate_text`."""
        return await self._call(Operation.GENERATE_TEXT, kwargs)

    async def stream_text(self, **kwargs: Any) -> TextStream:
        """Open a text stream for ``role``; see :func:`rolecall.stream_text`."""
        return await self._call(Operation.STREAM_TEXT, kwargs)

    async def generate_object(self, **kwargs: Any) -> ObjectResult:
        """Generate a structured object; see :func:`rolecall.generate_object`."""
        return await self._call(Operation.GENERATE_OBJECT, kwargs)

    async def _call(self, operation: Operation, kwargs: dict[str, Any]) -> Any:
        known = {
            "role",
            "command_name",
            "prompt",
            "system_prompt",
            "session",
            "project_root",
            "output_mode",
            "schema",
            "object_name",
            "max_retries",
        }
        named = {k: v for k, v in kwargs.items() if k in known}
        extra = {k: v for k, v in kwargs.items() if k not in known}
        request = normalize_request(operation, extra_params=extra, **named)
        return await self.run(request)

    # --- State machine ---

    async def run(self, request: ServiceRequest) -> Any:
        """Try each role in the request's attempt sequence until one succeeds.

        Raises:
            AllRolesExhaustedError: If every role failed or was skipped. The
                last concrete failure is attached as ``last_error`` and chained
                as ``__cause__``.
        """
        roles = attempt_sequence(request.role)
        settings = self.settings_for(request.project_root)
        level = (
            logging.INFO
            if settings.debug and request.output_mode == "cli"
            else logging.DEBUG
        )

        last_error: Exception | None = None
        for role in roles:
            try:
                return await self._try_role(role, request, settings, level)
            except (NotConfiguredError, MissingCredentialError) as exc:
                last_error = exc
                logger.warning("Skipping role %r: %s", role.value, exc)
            except Exception as exc:
                last_error = exc
                logger.warning(
                    "AI service call for role %r failed: %s",
                    role.value,
                    extract_error_message(exc),
                )
                if settings.debug:
                    logger.debug("Failure detail for role %r", role.value, exc_info=exc)

        logger.error("%s (%s)", ALL_ROLES_FAILED, ", ".join(r.value for r in roles))
        raise _exhausted(roles, last_error) from last_error

    async def _try_role(
        self,
        role: Role,
        request: ServiceRequest,
        settings: Settings,
        log_level: int,
    ) -> Any:
        binding = resolve_binding(role, settings, self.registry)
        provider = self.registry.get(binding.provider)
        if provider is None:  # pragma: no cover - resolve_binding checks this
            raise NotConfiguredError(
                f"Provider {binding.provider!r} is not registered", role=role.value
            )

        credential = resolve_credential(
            binding.provider,
            session=request.session,
            project_root=request.project_root,
            env_var=getattr(provider, "credential_env_var", None),
        )
        envelope = build_envelope(
            binding,
            operation=request.operation,
            credential=credential,
            context=ConnectionContext(
                settings=settings,
                session=request.session,
                project_root=request.project_root,
            ),
            system_prompt=request.system_prompt,
            prompt=request.prompt,
            extra_params=request.extra_params,
            schema=request.schema,
            object_name=request.object_name,
            max_retries=request.max_retries,
        )

        invoke = getattr(provider, request.operation.value)
        result = await retry_async(
            lambda: invoke(envelope),
            policy=self.retry_policy,
            label=(
                f"{request.operation.value} (provider: {binding.provider}, "
                f"model: {binding.model_id}, role: {role.value})"
            ),
            log_level=log_level,
            sleep=self._sleep,
        )
        result.role = role.value
        result.provider = binding.provider
        result.model_id = binding.model_id
        return result

    # --- Telemetry ---

    def log_ai_usage(
        self,
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
        """Record usage with this router's cost table and configured user id.

        Never raises; configuration problems yield None.
        """
        try:
            from rolecall.config import find_project_root

            settings = self.settings_for(project_root or find_project_root())
            table = self._cost_table or CostTable.from_settings(settings)
        except Exception as e:
            logger.error("Failed to load settings for AI usage telemetry: %s", e)
            return None
        return log_ai_usage(
            user_id=user_id if user_id is not None else settings.user_id,
            command_name=command_name,
            provider_name=provider_name,
            model_id=model_id,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            output_mode=output_mode,
            cost_table=table,
            debug=settings.debug,
        )


def _exhausted(
    roles: tuple[Role, ...], last_error: Exception | None
) -> AllRolesExhaustedError:
    names = tuple(r.value for r in roles)
    if last_error is None:
        return AllRolesExhaustedError(f"{ALL_ROLES_FAILED}.", roles=names)
    hint = last_error.hint if isinstance(last_error, RolecallError) else None
    return AllRolesExhaustedError(
        f"{ALL_ROLES_FAILED}: {extract_error_message(last_error)}",
        hint=hint,
        last_error=last_error,
        roles=names,
    )
