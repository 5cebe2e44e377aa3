"""Human-readable messages from arbitrary backend failures.

Each extractor understands one known failure shape and returns None when the
shape does not match. ``extract_error_message`` tries them in priority order.
"""

from __future__ import annotations

from collections.abc import Mapping
import json
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Callable

UNKNOWN_ERROR_MESSAGE = "An unknown AI service error occurred."
EXTRACTION_FAILED_MESSAGE = "Failed to extract error message."

_MISSING = object()


def _get(obj: Any, key: str) -> Any:
    """Read *key* from a mapping or attribute, returning _MISSING when absent."""
    if isinstance(obj, Mapping):
        return obj.get(key, _MISSING)
    return getattr(obj, key, _MISSING)


def _nested_message(obj: Any, *path: str) -> str | None:
    node = obj
    for key in path:
        node = _get(node, key)
        if node is _MISSING or node is None:
            return None
    return node if isinstance(node, str) and node else None


def from_data_envelope(failure: Any) -> str | None:
    """``failure.data.error.message`` (SDKs that wrap the provider body in ``data``)."""
    return _nested_message(failure, "data", "error", "message")


def from_nested_error(failure: Any) -> str | None:
    """``failure.error.message``."""
    return _nested_message(failure, "error", "message")


def from_response_body(failure: Any) -> str | None:
    """``error.message`` inside a JSON-encoded response body string."""
    for key in ("response_body", "responseBody"):
        body = _get(failure, key)
        if not isinstance(body, str):
            continue
        try:
            parsed = json.loads(body)
        except ValueError:
            continue
        message = _nested_message(parsed, "error", "message")
        if message:
            return message
    return None


def from_message(failure: Any) -> str | None:
    """A top-level ``message`` field, or an exception's own text."""
    if isinstance(failure, str):
        return None
    message = _get(failure, "message")
    if isinstance(message, str) and message:
        return message
    if isinstance(failure, BaseException):
        text = str(failure)
        return text or None
    return None


def from_plain_text(failure: Any) -> str | None:
    """The failure itself when it is a non-empty string."""
    return failure if isinstance(failure, str) and failure else None


EXTRACTORS: tuple[Callable[[Any], str | None], ...] = (
    from_data_envelope,
    from_nested_error,
    from_response_body,
    from_message,
    from_plain_text,
)


def extract_error_message(failure: Any) -> str:
    """Return the most specific message available for *failure*. Never raises."""
    try:
        for extractor in EXTRACTORS:
            message = extractor(failure)
            if message:
                return message
        return UNKNOWN_ERROR_MESSAGE
    except Exception:
        return EXTRACTION_FAILED_MESSAGE
