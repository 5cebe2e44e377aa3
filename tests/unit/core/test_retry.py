"""Retry executor: classification, backoff timing and attempt cap."""

from __future__ import annotations

import asyncio
import logging

import httpx
from hypothesis import given
from hypothesis import strategies as st
import pytest

from rolecall.errors import APIError, RateLimitError
from rolecall.retry import (
    DEFAULT_RETRY_POLICY,
    RetryPolicy,
    compute_backoff_delay,
    is_retryable_error,
    retry_async,
)
from tests.helpers import RecordingSleep, status_error

pytestmark = pytest.mark.unit


class _Counter:
    def __init__(self, *outcomes: object) -> None:
        self.outcomes = list(outcomes)
        self.calls = 0

    async def __call__(self) -> object:
        self.calls += 1
        item = self.outcomes.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item


# --- Classification ---


@pytest.mark.parametrize("status", [429, 500, 502, 503, 529, 599])
def test_rate_limit_and_server_errors_are_retryable(status):
    assert is_retryable_error(status_error(status)) is True


@pytest.mark.parametrize("status", [400, 401, 403, 404, 422])
def test_client_errors_are_not_retryable(status):
    assert is_retryable_error(status_error(status)) is False


def test_status_is_found_through_the_exception_chain():
    class SDKError(Exception):
        status_code = 503

    try:
        try:
            raise SDKError("upstream")
        except SDKError as e:
            raise RuntimeError("wrapped") from e
    except RuntimeError as wrapped:
        assert is_retryable_error(wrapped) is True


@pytest.mark.parametrize(
    "message",
    [
        "Rate limit exceeded",
        "Anthropic API is overloaded",
        "Service temporarily unavailable",
        "Request timeout after 60s",
        "network error while reading body",
    ],
)
def test_transient_messages_are_retryable(message):
    assert is_retryable_error(RuntimeError(message)) is True


def test_transport_failures_are_retryable():
    request = httpx.Request("POST", "https://example.invalid")
    assert is_retryable_error(httpx.ConnectError("refused", request=request)) is True
    assert is_retryable_error(httpx.ReadTimeout("slow", request=request)) is True
    assert is_retryable_error(TimeoutError()) is True


def test_adapter_flag_marks_retryable():
    assert is_retryable_error(APIError("x", retryable=True)) is True
    assert is_retryable_error(APIError("invalid request", retryable=False)) is False


def test_cancellation_is_never_retried():
    assert is_retryable_error(asyncio.CancelledError()) is False


# --- Backoff ---


def test_default_backoff_is_one_then_two_seconds():
    assert compute_backoff_delay(DEFAULT_RETRY_POLICY, retry_index=1) == 1.0
    assert compute_backoff_delay(DEFAULT_RETRY_POLICY, retry_index=2) == 2.0


@given(
    initial=st.floats(min_value=0.01, max_value=10),
    multiplier=st.floats(min_value=1, max_value=4),
    index=st.integers(min_value=1, max_value=6),
)
def test_backoff_grows_geometrically(initial, multiplier, index):
    policy = RetryPolicy(initial_delay_s=initial, backoff_multiplier=multiplier)
    delay = compute_backoff_delay(policy, retry_index=index)
    assert delay == pytest.approx(initial * multiplier ** (index - 1))


@given(index=st.integers(min_value=1, max_value=10))
def test_backoff_respects_cap_and_jitter_bounds(index):
    policy = RetryPolicy(max_delay_s=3.0, jitter=True)
    assert 0.0 <= compute_backoff_delay(policy, retry_index=index) <= 3.0


@pytest.mark.parametrize(
    "kwargs",
    [
        {"max_attempts": 0},
        {"initial_delay_s": -1},
        {"backoff_multiplier": 0},
        {"max_delay_s": -0.5},
    ],
)
def test_policy_rejects_invalid_values(kwargs):
    with pytest.raises(ValueError):
        RetryPolicy(**kwargs)


# --- Executor ---


@pytest.mark.asyncio
async def test_two_retryable_failures_sleep_one_then_two_seconds():
    sleep = RecordingSleep()
    factory = _Counter(status_error(503), status_error(429), "done")

    result = await retry_async(factory, sleep=sleep)

    assert result == "done"
    assert factory.calls == 3
    assert sleep.delays == [1.0, 2.0]


@pytest.mark.asyncio
async def test_third_failure_raises_instead_of_retrying():
    sleep = RecordingSleep()
    last = RateLimitError("still limited", status_code=429)
    factory = _Counter(status_error(500), status_error(500), last, "never")

    with pytest.raises(RateLimitError) as exc_info:
        await retry_async(factory, sleep=sleep)

    assert exc_info.value is last
    assert factory.calls == 3
    assert sleep.delays == [1.0, 2.0]


@pytest.mark.asyncio
async def test_non_retryable_failure_raises_immediately():
    sleep = RecordingSleep()
    bad_request = status_error(400, "invalid model")
    factory = _Counter(bad_request, "never")

    with pytest.raises(APIError) as exc_info:
        await retry_async(factory, sleep=sleep)

    assert exc_info.value is bad_request
    assert factory.calls == 1
    assert sleep.delays == []


@pytest.mark.asyncio
async def test_success_on_first_attempt_does_not_sleep():
    sleep = RecordingSleep()
    assert await retry_async(_Counter("first"), sleep=sleep) == "first"
    assert sleep.delays == []


@pytest.mark.asyncio
async def test_attempts_are_logged_without_changing_outcome(caplog):
    caplog.set_level(logging.DEBUG, logger="rolecall.retry")
    factory = _Counter(status_error(503, "overloaded"), "ok")

    await retry_async(
        factory, label="generate_text (provider: x)", sleep=RecordingSleep()
    )

    messages = [r.getMessage() for r in caplog.records]
    assert any("Attempt 1/3 calling generate_text" in m for m in messages)
    assert any("Attempt 1 failed" in m and "overloaded" in m for m in messages)
    assert any("succeeded on attempt 2" in m for m in messages)


@pytest.mark.asyncio
async def test_exhaustion_is_logged_at_error(caplog):
    caplog.set_level(logging.DEBUG, logger="rolecall.retry")
    factory = _Counter(*(status_error(503) for _ in range(3)))

    with pytest.raises(APIError):
        await retry_async(factory, label="call", sleep=RecordingSleep())

    errors = [r for r in caplog.records if r.levelno == logging.ERROR]
    assert [r.getMessage() for r in errors] == ["Max retries reached for call"]


@pytest.mark.asyncio
async def test_none_result_is_a_success():
    factory = _Counter(None, "never")
    assert await retry_async(factory, sleep=RecordingSleep()) is None
    assert factory.calls == 1


@pytest.mark.asyncio
async def test_reraised_failure_keeps_the_backend_traceback():
    factory = _Counter(status_error(400, "invalid model"))

    with pytest.raises(APIError) as exc_info:
        await retry_async(factory, sleep=RecordingSleep())

    frames = [entry.name for entry in exc_info.traceback]
    assert frames[-1] == "__call__"
