"""Anthropic Messages API provider (direct and via AWS Bedrock)."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

from rolecall.errors import APIError
from rolecall.providers._errors import wrap_provider_error
from rolecall.providers._utils import schema_to_json, validate_object
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

_ANTHROPIC_MAX_TOKENS = 8192
_MESSAGES_PARAMS = frozenset(
    {"max_tokens", "temperature", "top_p", "top_k", "stop_sequences", "metadata"}
)


class AnthropicProvider:
    """Anthropic Messages API provider."""

    def __init__(self, name: str = "anthropic") -> None:
        """Create an adapter identified by *name*."""
        self.name = name

    def __repr__(self) -> str:
        """Return a short identity representation."""
        return f"{type(self).__name__}(name={self.name!r})"

    def _create_client(self, envelope: CallEnvelope, *, max_retries: int) -> Any:
        """Build an async Anthropic client for one call."""
        try:
            from anthropic import AsyncAnthropic
        except ImportError as e:
            raise APIError(
                "anthropic package not installed",
                hint="pip install anthropic",
            ) from e
        return AsyncAnthropic(
            api_key=envelope.api_key,
            base_url=envelope.connection.get("base_url"),
            max_retries=max_retries,
        )

    def _request_kwargs(self, envelope: CallEnvelope) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "model": envelope.model,
            "max_tokens": _ANTHROPIC_MAX_TOKENS,
            "messages": envelope.conversation(),
        }
        if envelope.system_prompt:
            kwargs["system"] = envelope.system_prompt
        extra_body: dict[str, Any] = {}
        for key, value in envelope.params.items():
            if value is None:
                continue
            if key in _MESSAGES_PARAMS:
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
        """Generate a response with messages.create."""
        client = self._create_client(envelope, max_retries=0)
        try:
            response = await client.messages.create(**self._request_kwargs(envelope))
        except asyncio.CancelledError:
            raise
        except APIError:
            raise
        except Exception as e:
            raise self._wrap(e, "generate_text") from e
        finally:
            await client.close()

        text_parts = [
            getattr(block, "text", "")
            for block in getattr(response, "content", [])
            if getattr(block, "type", None) == "text"
        ]
        return TextResult(text="\n\n".join(text_parts), usage=_usage(response))

    async def stream_text(self, envelope: CallEnvelope) -> TextStream:
        """Open a streamed messages.create call.

        Input tokens arrive on ``message_start``, output tokens on
        ``message_delta``.
        """
        client = self._create_client(envelope, max_retries=0)
        try:
            stream = await client.messages.create(
                **self._request_kwargs(envelope), stream=True
            )
        except asyncio.CancelledError:
            await client.close()
            raise
        except Exception as e:
            await client.close()
            if isinstance(e, APIError):
                raise
            raise self._wrap(e, "stream_text") from e

        async def events() -> AsyncIterator[StreamEvent]:
            input_tokens = 0
            try:
                async for event in stream:
                    event_type = getattr(event, "type", None)
                    if event_type == "message_start":
                        message = getattr(event, "message", None)
                        input_tokens = int(
                            getattr(getattr(message, "usage", None), "input_tokens", 0)
                            or 0
                        )
                    elif event_type == "content_block_delta":
                        delta = getattr(event, "delta", None)
                        if getattr(delta, "type", None) == "text_delta":
                            yield StreamEvent(text=getattr(delta, "text", ""))
                    elif event_type == "message_delta":
                        output_tokens = int(
                            getattr(getattr(event, "usage", None), "output_tokens", 0)
                            or 0
                        )
                        yield StreamEvent(
                            usage=Usage(
                                input_tokens=input_tokens, output_tokens=output_tokens
                            )
                        )
            except asyncio.CancelledError:
                raise
            except APIError:
                raise
            except Exception as e:
                raise self._wrap(e, "stream_text") from e

        return TextStream(events(), on_close=client.close)

    async def generate_object(self, envelope: CallEnvelope) -> ObjectResult:
        """Generate an object by forcing a single tool call named after it."""
        object_name = envelope.object_name or "generated_object"
        kwargs = self._request_kwargs(envelope)
        if not kwargs["messages"] and envelope.prompt:
            kwargs["messages"] = [{"role": "user", "content": envelope.prompt}]
        kwargs["tools"] = [
            {
                "name": object_name,
                "description": f"Respond with a {object_name} object.",
                "input_schema": schema_to_json(envelope.schema),
            }
        ]
        kwargs["tool_choice"] = {"type": "tool", "name": object_name}

        client = self._create_client(envelope, max_retries=envelope.max_retries or 0)
        try:
            response = await client.messages.create(**kwargs)
        except asyncio.CancelledError:
            raise
        except APIError:
            raise
        except Exception as e:
            raise self._wrap(e, "generate_object") from e
        finally:
            await client.close()

        data: Any = None
        for block in getattr(response, "content", []):
            if getattr(block, "type", None) == "tool_use":
                data = getattr(block, "input", None)
                break
        if data is None:
            raise APIError(
                f"{self.name} did not return a {object_name} tool call",
                retryable=False,
                provider=self.name,
                phase="generate_object",
            )
        return ObjectResult(
            object=validate_object(envelope.schema, data, provider=self.name),
            usage=_usage(response),
        )


class BedrockProvider(AnthropicProvider):
    """Anthropic models served through AWS Bedrock.

    Empty access keys fall through to the AWS default credential chain.
    """

    def __init__(self) -> None:
        """Create the Bedrock adapter."""
        super().__init__("bedrock")

    def _create_client(self, envelope: CallEnvelope, *, max_retries: int) -> Any:
        try:
            from anthropic import AsyncAnthropicBedrock
        except ImportError as e:
            raise APIError(
                "anthropic bedrock support not installed",
                hint="pip install 'anthropic[bedrock]'",
            ) from e
        connection = envelope.connection
        return AsyncAnthropicBedrock(
            aws_access_key=connection.get("access_key_id") or None,
            aws_secret_key=connection.get("secret_access_key") or None,
            aws_region=connection.get("region"),
            base_url=connection.get("base_url"),
            max_retries=max_retries,
        )


def _usage(response: Any) -> Usage:
    raw = getattr(response, "usage", None)
    if raw is None:
        return Usage()
    return Usage(
        input_tokens=int(getattr(raw, "input_tokens", 0) or 0),
        output_tokens=int(getattr(raw, "output_tokens", 0) or 0),
    )
