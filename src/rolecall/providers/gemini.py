"""Google Gemini provider (Gemini Developer API and Vertex AI)."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

from rolecall.errors import APIError
from rolecall.providers._errors import wrap_provider_error
from rolecall.providers._utils import parse_json_text, schema_to_json, validate_object
from rolecall.providers.models import (
    ObjectResult,
    StreamEvent,
    TextResult,
    TextStream,
    Usage,
)

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from rolecall.providers.models import CallEnvelope

# Envelope param name -> GenerateContentConfig field
_CONFIG_PARAMS = {
    "max_tokens": "max_output_tokens",
    "temperature": "temperature",
    "top_p": "top_p",
    "top_k": "top_k",
    "stop": "stop_sequences",
    "seed": "seed",
}


class GeminiProvider:
    """Google Gemini provider.

    With ``vertex=True`` the client targets Vertex AI: project/location from
    the envelope when present (application default credentials), otherwise
    the API key in express mode.
    """

    def __init__(self, name: str = "google", *, vertex: bool = False) -> None:
        """Create an adapter identified by *name*."""
        self.name = name
        self.vertex = vertex

    def __repr__(self) -> str:
        """Return a short identity representation."""
        return f"{type(self).__name__}(name={self.name!r}, vertex={self.vertex})"

    def _create_client(self, envelope: CallEnvelope) -> Any:
        """Build a google-genai client for one call."""
        try:
            from google import genai
            from google.genai import types
        except ImportError as e:
            raise APIError(
                "google-genai package not installed",
                hint="pip install google-genai",
            ) from e

        connection = envelope.connection
        if self.vertex:
            project = connection.get("project_id")
            if project:
                return genai.Client(
                    vertexai=True,
                    project=project,
                    location=connection.get("location"),
                )
            return genai.Client(vertexai=True, api_key=envelope.api_key)

        base_url = connection.get("base_url")
        http_options = types.HttpOptions(base_url=base_url) if base_url else None
        return genai.Client(api_key=envelope.api_key, http_options=http_options)

    def _request_kwargs(
        self, envelope: CallEnvelope, *, schema: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        from google.genai import types

        config_kwargs: dict[str, Any] = {}
        if envelope.system_prompt:
            config_kwargs["system_instruction"] = envelope.system_prompt
        for key, value in envelope.params.items():
            target = _CONFIG_PARAMS.get(key)
            if target is not None and value is not None:
                config_kwargs[target] = value
        if schema is not None:
            config_kwargs["response_mime_type"] = "application/json"
            config_kwargs["response_json_schema"] = schema

        contents = [
            types.Content(
                role="model" if m["role"] == "assistant" else "user",
                parts=[types.Part.from_text(text=m["content"])],
            )
            for m in envelope.conversation()
        ]
        if not contents and envelope.prompt:
            contents = [
                types.Content(
                    role="user", parts=[types.Part.from_text(text=envelope.prompt)]
                )
            ]
        return {
            "model": envelope.model,
            "contents": contents,
            "config": types.GenerateContentConfig(**config_kwargs),
        }

    def _wrap(self, exc: Exception, phase: str) -> APIError:
        return wrap_provider_error(
            exc,
            provider=self.name,
            phase=phase,
            message=f"{self.name} {phase} failed",
        )

    async def generate_text(self, envelope: CallEnvelope) -> TextResult:
        """Generate content from the Gemini model."""
        client = self._create_client(envelope)
        try:
            response = await client.aio.models.generate_content(
                **self._request_kwargs(envelope)
            )
        except asyncio.CancelledError:
            raise
        except APIError:
            raise
        except Exception as e:
            raise self._wrap(e, "generate_text") from e
        if not response:
            raise APIError(
                f"{self.name} returned an empty response",
                provider=self.name,
                phase="generate_text",
            )
        return TextResult(text=_response_text(response), usage=_usage(response))

    async def stream_text(self, envelope: CallEnvelope) -> TextStream:
        """Open a generate_content_stream call; usage is cumulative per chunk."""
        client = self._create_client(envelope)
        try:
            stream = await client.aio.models.generate_content_stream(
                **self._request_kwargs(envelope)
            )
        except asyncio.CancelledError:
            raise
        except APIError:
            raise
        except Exception as e:
            raise self._wrap(e, "stream_text") from e

        async def events() -> AsyncIterator[StreamEvent]:
            try:
                async for chunk in stream:
                    usage = (
                        _usage(chunk)
                        if getattr(chunk, "usage_metadata", None)
                        else None
                    )
                    yield StreamEvent(text=_response_text(chunk), usage=usage)
            except asyncio.CancelledError:
                raise
            except APIError:
                raise
            except Exception as e:
                raise self._wrap(e, "stream_text") from e

        return TextStream(events())

    async def generate_object(self, envelope: CallEnvelope) -> ObjectResult:
        """Generate JSON constrained by ``response_json_schema``."""
        client = self._create_client(envelope)
        kwargs = self._request_kwargs(envelope, schema=schema_to_json(envelope.schema))
        try:
            response = await client.aio.models.generate_content(**kwargs)
        except asyncio.CancelledError:
            raise
        except APIError:
            raise
        except Exception as e:
            raise self._wrap(e, "generate_object") from e

        text = _response_text(response)
        data = parse_json_text(text, provider=self.name)
        return ObjectResult(
            object=validate_object(envelope.schema, data, provider=self.name),
            usage=_usage(response),
            text=text,
        )


def _response_text(response: Any) -> str:
    # ``.text`` raises or warns on some non-text candidates; treat as empty.
    try:
        text = getattr(response, "text", None)
    except Exception:
        return ""
    return text if isinstance(text, str) else ""


def _usage(response: Any) -> Usage:
    um = getattr(response, "usage_metadata", None)
    if um is None:
        return Usage()
    return Usage(
        input_tokens=int(getattr(um, "prompt_token_count", 0) or 0),
        output_tokens=int(getattr(um, "candidates_token_count", 0) or 0),
    )
