"""OpenAI Chat Completions provider and OpenAI-compatible backends."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

from rolecall.errors import APIError
from rolecall.providers._errors import wrap_provider_error
from rolecall.providers._utils import (
    parse_json_text,
    schema_to_json,
    to_strict_schema,
    validate_object,
)
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

# Parameters passed to chat.completions.create as keywords; anything else
# rides along in extra_body so backend-specific knobs still reach the server.
_CHAT_PARAMS = frozenset(
    {
        "max_tokens",
        "temperature",
        "top_p",
        "frequency_penalty",
        "presence_penalty",
        "stop",
        "seed",
        "n",
        "user",
    }
)


class OpenAICompatibleProvider:
    """Chat Completions adapter for OpenAI and OpenAI-compatible endpoints.

    One instance per backend name; the instance only remembers its identity
    and defaults. Clients are built per call from the envelope.
    """

    def __init__(
        self,
        name: str = "openai",
        *,
        default_base_url: str | None = None,
        strict_schema: bool = True,
        stream_usage: bool = True,
    ) -> None:
        """Create an adapter identified by *name*."""
        self.name = name
        self.default_base_url = default_base_url
        self.strict_schema = strict_schema
        self.stream_usage = stream_usage

    def __repr__(self) -> str:
        """Return a short identity representation."""
        return f"{type(self).__name__}(name={self.name!r})"

    def _create_client(self, envelope: CallEnvelope, *, max_retries: int) -> Any:
        """Build an async OpenAI client for one call."""
        try:
            from openai import AsyncOpenAI
        except ImportError as e:
            raise APIError(
                "openai package not installed",
                hint="pip install openai",
            ) from e
        return AsyncOpenAI(
            # Keyless local servers still need a non-empty value for the SDK.
            api_key=envelope.api_key or self.name,
            base_url=envelope.connection.get("base_url") or self.default_base_url,
            max_retries=max_retries,
        )

    def _request_kwargs(self, envelope: CallEnvelope) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "model": envelope.model,
            "messages": [m.to_dict() for m in envelope.messages],
        }
        extra_body: dict[str, Any] = {}
        for key, value in envelope.params.items():
            if value is None:
                continue
            if key in _CHAT_PARAMS:
                kwargs[key] = value
            else:
                extra_body[key] = value
        if extra_body:
            kwargs["extra_body"] = extra_body
        return kwargs

    def _wrap(self, exc: Exception, phase: str) -> APIError:
        return wrap_provider_error(
            exc,
            provider=self.name,
            phase=phase,
            message=f"{self.name} {phase} failed",
        )

    async def generate_text(self, envelope: CallEnvelope) -> TextResult:
        """Generate a response with chat.completions."""
        client = self._create_client(envelope, max_retries=0)
        try:
            response = await client.chat.completions.create(
                **self._request_kwargs(envelope)
            )
        except asyncio.CancelledError:
            raise
        except APIError:
            raise
        except Exception as e:
            raise self._wrap(e, "generate_text") from e
        finally:
            await client.close()

        return TextResult(text=_message_text(response), usage=_usage(response))

    async def stream_text(self, envelope: CallEnvelope) -> TextStream:
        """Open a chat.completions stream; usage arrives on the final chunk."""
        client = self._create_client(envelope, max_retries=0)
        kwargs = self._request_kwargs(envelope)
        kwargs["stream"] = True
        if self.stream_usage:
            kwargs["stream_options"] = {"include_usage": True}
        try:
            stream = await client.chat.completions.create(**kwargs)
        except asyncio.CancelledError:
            await client.close()
            raise
        except Exception as e:
            await client.close()
            if isinstance(e, APIError):
                raise
            raise self._wrap(e, "stream_text") from e

        async def events() -> AsyncIterator[StreamEvent]:
            try:
                async for chunk in stream:
                    usage = _usage(chunk) if getattr(chunk, "usage", None) else None
                    text = ""
                    choices = getattr(chunk, "choices", None) or []
                    if choices:
                        delta = getattr(choices[0], "delta", None)
                        text = getattr(delta, "content", None) or ""
                    if text or usage is not None:
                        yield StreamEvent(text=text, usage=usage)
            except asyncio.CancelledError:
                raise
            except APIError:
                raise
            except Exception as e:
                raise self._wrap(e, "stream_text") from e

        return TextStream(events(), on_close=client.close)

    async def generate_object(self, envelope: CallEnvelope) -> ObjectResult:
        """Generate a JSON object constrained by a json_schema response format."""
        json_schema = schema_to_json(envelope.schema)
        kwargs = self._request_kwargs(envelope)
        if not any(m["role"] == "user" for m in kwargs["messages"]) and envelope.prompt:
            kwargs["messages"].append({"role": "user", "content": envelope.prompt})
        kwargs["response_format"] = {
            "type": "json_schema",
            "json_schema": {
                "name": envelope.object_name or "generated_object",
                "schema": (
                    to_strict_schema(json_schema) if self.strict_schema else json_schema
                ),
                "strict": self.strict_schema,
            },
        }

        client = self._create_client(envelope, max_retries=envelope.max_retries or 0)
        try:
            response = await client.chat.completions.create(**kwargs)
        except asyncio.CancelledError:
            raise
        except APIError:
            raise
        except Exception as e:
            raise self._wrap(e, "generate_object") from e
        finally:
            await client.close()

        text = _message_text(response)
        data = parse_json_text(text, provider=self.name)
        return ObjectResult(
            object=validate_object(envelope.schema, data, provider=self.name),
            usage=_usage(response),
            text=text,
        )


class AzureOpenAIProvider(OpenAICompatibleProvider):
    """Azure OpenAI deployments; the envelope's base URL is the resource endpoint."""

    DEFAULT_API_VERSION = "2024-10-21"

    def __init__(self) -> None:
        """Create the Azure adapter."""
        super().__init__("azure")

    def _create_client(self, envelope: CallEnvelope, *, max_retries: int) -> Any:
        try:
            from openai import AsyncAzureOpenAI
        except ImportError as e:
            raise APIError(
                "openai package not installed",
                hint="pip install openai",
            ) from e
        return AsyncAzureOpenAI(
            api_key=envelope.api_key,
            azure_endpoint=envelope.connection.get("base_url"),
            api_version=envelope.connection.get("api_version")
            or self.DEFAULT_API_VERSION,
            max_retries=max_retries,
        )


def _message_text(response: Any) -> str:
    choices = getattr(response, "choices", None) or []
    if not choices:
        return ""
    message = getattr(choices[0], "message", None)
    content = getattr(message, "content", None)
    return content if isinstance(content, str) else ""


def _usage(response: Any) -> Usage:
    raw = getattr(response, "usage", None)
    if raw is None:
        return Usage()
    return Usage(
        input_tokens=int(getattr(raw, "prompt_tokens", 0) or 0),
        output_tokens=int(getattr(raw, "completion_tokens", 0) or 0),
    )
