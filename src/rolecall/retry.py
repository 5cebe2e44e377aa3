"""Minimal async retry scoped to a single backend call.

Design goals:
- Explicit state (policy + attempt counter), no hidden globals
- Deterministic backoff so delays are predictable and testable
- Knows nothing about roles; fallback sequencing lives in the orchestrator
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
import logging
import random
from typing import TYPE_CHECKING, TypeVar

import httpx

from rolecall._http import extract_status_code, is_retryable_status
from rolecall.error_messages import extract_error_message
from rolecall.errors import APIError, _walk_exception_chain

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

T = TypeVar("T")

logger = logging.getLogger(__name__)

_RETRYABLE_MESSAGE_MARKERS: tuple[str, ...] = (
    "rate limit",
    "overloaded",
    "service temporarily unavailable",
    "timeout",
    "network error",
)


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retry policy with exponential backoff.

    The defaults give 3 attempts with 1s then 2s between them.
    """

    max_attempts: int = 3
    initial_delay_s: float = 1.0
    backoff_multiplier: float = 2.0
    max_delay_s: float | None = None
    jitter: bool = False  # "full jitter" when enabled

    def __post_init__(self) -> None:
        """Validate invariants to keep retry behavior predictable."""
        if self.max_attempts < 1:
            raise ValueError("RetryPolicy.max_attempts must be >= 1")
        if self.initial_delay_s < 0:
            raise ValueError("RetryPolicy.initial_delay_s must be >= 0")
        if self.backoff_multiplier <= 0:
            raise ValueError("RetryPolicy.backoff_multiplier must be > 0")
        if self.max_delay_s is not None and self.max_delay_s < 0:
            raise ValueError("RetryPolicy.max_delay_s must be >= 0 or None")

    @property
    def max_retries(self) -> int:
        """Retries after the first attempt."""
        return self.max_attempts - 1


DEFAULT_RETRY_POLICY = RetryPolicy()


def _is_transient_network_error(exc: BaseException) -> bool:
    for e in _walk_exception_chain(exc):
        if isinstance(e, (TimeoutError, asyncio.TimeoutError)):
            return True
        # RequestError is the stable base class for transport-level failures.
        if isinstance(e, (httpx.TimeoutException, httpx.RequestError)):
            return True
    return False


def is_retryable_error(exc: BaseException) -> bool:
    """Return True when a backend failure is presumed transient.

    Contract:
    - Cancellation is never retried.
    - HTTP 429 and any 5xx anywhere in the exception chain are retried.
    - APIError flagged ``retryable`` by its adapter is retried.
    - Transport timeouts and connection failures are retried.
    - Messages mentioning rate limits, overload, temporary unavailability,
      timeouts or network errors are retried.
    """
    if isinstance(exc, asyncio.CancelledError):
        return False

    if is_retryable_status(extract_status_code(exc)):
        return True
    if isinstance(exc, APIError) and exc.retryable is True:
        return True
    if _is_transient_network_error(exc):
        return True

    message = str(exc).lower()
    return any(marker in message for marker in _RETRYABLE_MESSAGE_MARKERS)


def compute_backoff_delay(policy: RetryPolicy, *, retry_index: int) -> float:
    """Return the sleep before retry number *retry_index* (1-based)."""
    base = policy.initial_delay_s * (
        policy.backoff_multiplier ** max(0, retry_index - 1)
    )
    if policy.max_delay_s is not None:
        base = min(policy.max_delay_s, base)
    if base <= 0:
        return 0.0
    if not policy.jitter:
        return base
    # Full jitter: random in [0, base] to avoid thundering herd.
    return random.random() * base  # noqa: S311


async def retry_async(
    factory: Callable[[], Awaitable[T]],
    *,
    policy: RetryPolicy = DEFAULT_RETRY_POLICY,
    should_retry: Callable[[BaseException], bool] = is_retryable_error,
    label: str = "backend call",
    log_level: int = logging.DEBUG,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Run an async factory with bounded retries.

    Non-retryable failures and the failure of the last permitted attempt are
    re-raised unchanged.

    Args:
        factory: Zero-argument coroutine factory issuing one backend call.
        policy: Attempt cap and backoff shape.
        should_retry: Failure classifier.
        label: Human-readable description used in log lines.
        log_level: Level for attempt start/success lines.
        sleep: Awaitable sleep, injectable for tests.
    """
    last_exc: BaseException | None = None
    for attempt in range(1, policy.max_attempts + 1):
        logger.log(
            log_level,
            "Attempt %d/%d calling %s",
            attempt,
            policy.max_attempts,
            label,
        )
        try:
            value = await factory()
        except Exception as exc:
            last_exc = exc
            logger.warning(
                "Attempt %d failed for %s: %s", attempt, label, extract_error_message(exc)
            )
            if not should_retry(exc):
                raise
            if attempt >= policy.max_attempts:
                logger.error("Max retries reached for %s", label)
                raise
        else:
            logger.log(log_level, "%s succeeded on attempt %d", label, attempt)
            return value

        delay = compute_backoff_delay(policy, retry_index=attempt)
        logger.info(
            "Something went wrong on the provider side. Retrying in %.1fs...", delay
        )
        if delay > 0:
            await sleep(delay)

    # Unreachable: the loop always returns or raises.
    if last_exc is None:  # pragma: no cover
        raise RuntimeError(f"retry_async exhausted without an exception for {label}")
    raise last_exc  # pragma: no cover
