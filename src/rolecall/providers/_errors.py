"""Shared provider-side error helpers.

Adapters wrap SDK exceptions into APIError so the retry executor sees a
status code and a retryable flag instead of SDK-specific types.
"""

from __future__ import annotations

import asyncio
import json
import re
from typing import Any

import httpx

from rolecall._http import extract_status_code, is_retryable_status
from rolecall.credentials import CREDENTIAL_ENV_VARS
from rolecall.errors import APIError, RateLimitError, _walk_exception_chain

_PROTO_DURATION_RE = re.compile(r"^(\d+(?:\.\d+)?)s$")


def _extract_retry_info_seconds(exc: BaseException) -> float | None:
    """Extract retry delay from Google API-style RetryInfo in error details.

    google-genai ``ClientError`` exposes the parsed JSON body via ``.details``::

        {"error": {"details": [{"@type": "...RetryInfo", "retryDelay": "8s"}]}}
    """
    details: Any = getattr(exc, "details", None)
    if not isinstance(details, dict):
        return None
    error: Any = details.get("error")
    if not isinstance(error, dict):
        return None
    detail_list: Any = error.get("details")
    if not isinstance(detail_list, list):
        return None
    for entry in detail_list:
        if not isinstance(entry, dict):
            continue
        at_type = entry.get("@type", "")
        if not isinstance(at_type, str) or "RetryInfo" not in at_type:
            continue
        delay_raw = entry.get("retryDelay")
        if not isinstance(delay_raw, str):
            continue
        m = _PROTO_DURATION_RE.match(delay_raw)
        if m:
            return float(m.group(1))
    return None


def extract_retry_after_s(exc: BaseException) -> float | None:
    """Walk the exception chain to find a retry-after delay in seconds."""
    for e in _walk_exception_chain(exc):
        value = getattr(e, "retry_after", None)
        if isinstance(value, (int, float)) and value >= 0:
            return float(value)

        response = getattr(e, "response", None)
        headers: Any = getattr(response, "headers", None)
        if headers is not None:
            raw: Any = None
            try:
                raw = headers.get("Retry-After")
            except Exception:
                raw = None
            if isinstance(raw, str) and raw.strip():
                try:
                    seconds = float(raw)
                except ValueError:
                    seconds = None
                if seconds is not None and seconds >= 0:
                    return seconds

        retry_info = _extract_retry_info_seconds(e)
        if retry_info is not None:
            return retry_info
    return None


def extract_error_body(exc: BaseException) -> str | None:
    """Return the backend's error payload as JSON text shaped ``{"error": {...}}``.

    openai and anthropic status errors carry the decoded body in ``.body``
    (openai strips the outer ``error`` key); google-genai errors carry it in
    ``.details``. Otherwise the raw ``response.text`` is returned.
    """
    for e in _walk_exception_chain(exc):
        for attr in ("body", "details"):
            body: Any = getattr(e, attr, None)
            if not isinstance(body, dict):
                continue
            if not isinstance(body.get("error"), dict) and "message" in body:
                body = {"error": body}
            return json.dumps(body, default=str)

        response = getattr(e, "response", None)
        if response is None:
            continue
        try:
            text = getattr(response, "text", None)
        except Exception:
            # Streaming responses raise until the body is read.
            text = None
        if isinstance(text, str) and text.strip():
            return text
    return None


def _auth_hint(provider: str, status_code: int | None) -> str | None:
    if status_code in {401, 403}:
        env_var = CREDENTIAL_ENV_VARS.get(provider, "the provider API key")
        return f"Check credentials/permissions (try setting {env_var})."
    return None


def wrap_provider_error(
    exc: BaseException,
    *,
    provider: str,
    phase: str,
    message: str | None = None,
    hint: str | None = None,
) -> APIError:
    """Map provider SDK exceptions into APIError with stable retry metadata."""
    if isinstance(exc, asyncio.CancelledError):
        raise exc

    # Already wrapped: fill in missing context only.
    if isinstance(exc, APIError):
        if exc.provider is None:
            exc.provider = provider
        if exc.phase is None:
            exc.phase = phase
        if hint is not None and exc.hint is None:
            exc.hint = hint
        return exc

    status_code = extract_status_code(exc)
    retry_after_s = extract_retry_after_s(exc)

    retryable = is_retryable_status(status_code)
    if not retryable:
        for e in _walk_exception_chain(exc):
            if isinstance(e, (httpx.TimeoutException, httpx.RequestError, TimeoutError)):
                retryable = True
                break

    msg = message or f"{provider} {phase} failed"
    err_cls: type[APIError] = RateLimitError if status_code == 429 else APIError
    status_note = f" (status={status_code})" if isinstance(status_code, int) else ""
    cause = str(exc)
    return err_cls(
        f"{msg}{status_note}: {cause}" if cause else f"{msg}{status_note}",
        hint=hint if hint is not None else _auth_hint(provider, status_code),
        retryable=retryable,
        status_code=status_code,
        retry_after_s=retry_after_s,
        provider=provider,
        phase=phase,
        response_body=extract_error_body(exc),
    )
