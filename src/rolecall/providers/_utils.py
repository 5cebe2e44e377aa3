"""Shared utilities for provider implementations."""

from __future__ import annotations

from copy import deepcopy
import json
import re
from typing import Any

import jsonschema
from pydantic import BaseModel, TypeAdapter, ValidationError

from rolecall.errors import APIError

_FENCED_JSON_RE = re.compile(r"```(?:json)?\s*\n(.*?)\n\s*```", re.DOTALL)


def _is_model_class(schema: Any) -> bool:
    return isinstance(schema, type) and issubclass(schema, BaseModel)


def schema_to_json(schema: Any) -> dict[str, Any]:
    """Return a JSON schema for a pydantic model class, a type, or a schema dict."""
    if isinstance(schema, dict):
        return deepcopy(schema)
    if _is_model_class(schema):
        return schema.model_json_schema()
    try:
        return TypeAdapter(schema).json_schema()
    except Exception as e:
        raise APIError(
            f"Unsupported schema type: {type(schema).__name__}",
            hint="Pass a pydantic model class or a JSON schema dict.",
        ) from e


def to_strict_schema(schema: dict[str, Any]) -> dict[str, Any]:
    """Normalize a JSON schema for strict structured-output requirements.

    Ensures that for all 'object' types:
    1. additionalProperties is False
    2. All defined properties are listed in 'required'
    """
    normalized = deepcopy(schema)

    def walk(node: Any) -> Any:
        if isinstance(node, list):
            return [walk(item) for item in node]
        if not isinstance(node, dict):
            return node

        updated: dict[str, Any] = {}
        for key, value in node.items():
            updated[key] = walk(value)

        if updated.get("type") == "object" or "properties" in updated:
            properties = updated.get("properties", {})
            if isinstance(properties, dict):
                updated["additionalProperties"] = False
                updated["required"] = list(properties.keys())

        return updated

    result = walk(normalized)
    if not isinstance(result, dict):
        raise APIError("Invalid schema: expected object schema")
    return result


def parse_json_text(text: str, *, provider: str) -> Any:
    """Parse model output as JSON, tolerating a fenced ```json block."""
    candidate = text.strip()
    match = _FENCED_JSON_RE.search(candidate)
    if match:
        candidate = match.group(1)
    try:
        return json.loads(candidate)
    except json.JSONDecodeError as e:
        raise APIError(
            f"{provider} returned output that is not valid JSON: {e.msg}",
            retryable=False,
            provider=provider,
            phase="generate_object",
        ) from e


def validate_object(schema: Any, data: Any, *, provider: str) -> Any:
    """Validate *data* against *schema*.

    Model classes yield a model instance. Schema dicts are enforced with
    ``jsonschema`` and the parsed value is returned as-is.
    """
    try:
        if _is_model_class(schema):
            return schema.model_validate(data)
        if isinstance(schema, dict):
            jsonschema.validate(data, schema)
            return data
        return TypeAdapter(schema).validate_python(data)
    except jsonschema.ValidationError as e:
        raise APIError(
            f"{provider} returned an object that does not match the schema: {e.message}",
            retryable=False,
            provider=provider,
            phase="generate_object",
        ) from e
    except jsonschema.SchemaError as e:
        raise APIError(
            f"Invalid JSON schema for {provider} object generation: {e.message}",
            hint="Pass a valid JSON schema dict or a pydantic model class.",
            retryable=False,
            provider=provider,
            phase="generate_object",
        ) from e
    except (ValidationError, ValueError) as e:
        raise APIError(
            f"{provider} returned an object that does not match the schema: {e}",
            retryable=False,
            provider=provider,
            phase="generate_object",
        ) from e

