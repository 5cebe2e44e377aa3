"""Exception hierarchy for rolecall."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator


class RolecallError(Exception):
    """Base exception for all rolecall errors."""

    def __init__(self, message: str, *, hint: str | None = None) -> None:
        super().__init__(message)
        self.hint = hint


class ConfigurationError(RolecallError):
    """Configuration validation or resolution failed."""


class NotConfiguredError(ConfigurationError):
    """A role has no usable backend/model mapping, or the backend is unknown.

    The orchestrator treats this as a skip: the role is abandoned and the next
    candidate role is tried.
    """

    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        role: str | None = None,
        provider: str | None = None,
    ) -> None:
        super().__init__(message, hint=hint)
        self.role = role
        self.provider = provider


class MissingCredentialError(RolecallError):
    """A required secret for a backend could not be resolved."""

    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        provider: str | None = None,
        env_var: str | None = None,
    ) -> None:
        super().__init__(message, hint=hint)
        self.provider = provider
        self.env_var = env_var


class APIError(RolecallError):
    """A backend call failed.

    Adapters attach retry metadata so the retry executor can decide without
    guessing from the exception type alone.
    """

    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        retryable: bool | None = None,
        status_code: int | None = None,
        retry_after_s: float | None = None,
        provider: str | None = None,
        phase: str | None = None,
        role: str | None = None,
        response_body: str | None = None,
    ) -> None:
        super().__init__(message, hint=hint)
        self.retryable = retryable
        self.status_code = status_code
        self.retry_after_s = retry_after_s
        self.provider = provider
        self.phase = phase
        self.role = role
        #: Backend error payload as JSON text, when the SDK exposed one.
        self.response_body = response_body


class RateLimitError(APIError):
    """Rate limit exceeded (HTTP 429)."""


class AllRolesExhaustedError(RolecallError):
    """Every candidate role failed or was skipped.

    ``last_error`` holds the last concrete failure encountered, or ``None``
    when no attempt produced one.
    """

    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        last_error: BaseException | None = None,
        roles: tuple[str, ...] = (),
    ) -> None:
        super().__init__(message, hint=hint)
        self.last_error = last_error
        self.roles = roles


def _walk_exception_chain(exc: BaseException) -> Iterator[BaseException]:
    """Yield *exc* and its ``__cause__``/``__context__`` chain, with cycle protection."""
    seen: set[int] = set()
    stack: list[BaseException] = [exc]
    while stack:
        cur = stack.pop()
        if id(cur) in seen:
            continue
        seen.add(id(cur))
        yield cur

        cause = cur.__cause__
        if isinstance(cause, BaseException):
            stack.append(cause)
        context = cur.__context__
        if isinstance(context, BaseException):
            stack.append(context)
