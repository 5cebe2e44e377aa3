"""Small HTTP-related helpers shared across rolecall.

This module is intentionally tiny to avoid circular imports and drift.
"""

from __future__ import annotations

from rolecall.errors import _walk_exception_chain

RATE_LIMIT_STATUS = 429
SERVER_ERROR_FLOOR = 500


def is_retryable_status(status_code: int | None) -> bool:
    """Return True for HTTP 429 and any 5xx status."""
    if not isinstance(status_code, int):
        return False
    return status_code == RATE_LIMIT_STATUS or SERVER_ERROR_FLOOR <= status_code <= 599


def extract_status_code(exc: BaseException) -> int | None:
    """Walk the exception chain to find an HTTP status code."""
    for e in _walk_exception_chain(exc):
        # google-genai errors expose the HTTP status as ``code``.
        for attr in ("status_code", "status", "code"):
            value = getattr(e, attr, None)
            if isinstance(value, int) and 100 <= value <= 599:
                return value
        response = getattr(e, "response", None)
        value = getattr(response, "status_code", None)
        if isinstance(value, int) and 100 <= value <= 599:
            return value
    return None
