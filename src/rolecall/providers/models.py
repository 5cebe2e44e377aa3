"""Domain models for the provider transport layer."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Literal

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Awaitable, Callable, Mapping


class Operation(str, Enum):
    """The three capabilities every backend adapter implements.

    Values double as the adapter method names.
    """

    GENERATE_TEXT = "generate_text"
    STREAM_TEXT = "stream_text"
    GENERATE_OBJECT = "generate_object"


@dataclass(frozen=True)
class Message:
    """A single conversational message entry."""

    role: Literal["system", "user", "assistant"]
    content: str

    def to_dict(self) -> dict[str, str]:
        """Return the ``{"role", "content"}`` wire shape most SDKs accept."""
        return {"role": self.role, "content": self.content}


@dataclass(frozen=True)
class CallEnvelope:
    """A fully assembled, backend-ready request for one attempt.

    ``params`` carries sampling/invocation parameters, ``connection`` the
    backend-specific connection fields (credential, base URL, region, ...).
    ``schema``/``object_name``/``prompt`` are set only for object generation.
    """

    operation: Operation
    provider: str
    model: str
    messages: tuple[Message, ...] = ()
    params: Mapping[str, Any] = field(default_factory=dict)
    connection: Mapping[str, Any] = field(default_factory=dict)
    schema: Any = None
    object_name: str | None = None
    prompt: str | None = None
    max_retries: int | None = None

    @property
    def api_key(self) -> str | None:
        """Credential carried in the connection fields, if any."""
        value = self.connection.get("api_key")
        return value if isinstance(value, str) else None

    @property
    def system_prompt(self) -> str | None:
        """Content of the system message, if one was supplied."""
        for message in self.messages:
            if message.role == "system":
                return message.content
        return None

    def conversation(self) -> list[dict[str, str]]:
        """Non-system messages in wire shape (for APIs taking ``system`` separately)."""
        return [m.to_dict() for m in self.messages if m.role != "system"]

    def as_kwargs(self) -> dict[str, Any]:
        """Flatten into one mapping, later groups overriding earlier keys.

        Order: params < messages < connection < object fields.
        """
        flat: dict[str, Any] = {"model": self.model, **self.params}
        flat["messages"] = [m.to_dict() for m in self.messages]
        flat.update(self.connection)
        if self.operation is Operation.GENERATE_OBJECT:
            flat["schema"] = self.schema
            flat["object_name"] = self.object_name
            flat["prompt"] = self.prompt
            if self.max_retries is not None:
                flat["max_retries"] = self.max_retries
        return flat

    def __repr__(self) -> str:
        """Return a representation with secret connection fields redacted."""
        connection = {
            k: ("[REDACTED]" if _is_secret_key(k) and v else v)
            for k, v in self.connection.items()
        }
        return (
            f"CallEnvelope(operation={self.operation.value!r}, "
            f"provider={self.provider!r}, model={self.model!r}, "
            f"messages={len(self.messages)}, params={dict(self.params)!r}, "
            f"connection={connection!r}, object_name={self.object_name!r})"
        )

    __str__ = __repr__


def _is_secret_key(key: str) -> bool:
    lowered = key.lower()
    return "key" in lowered or "secret" in lowered or "token" in lowered


@dataclass(frozen=True)
class Usage:
    """Token counts reported by a backend."""

    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        """Sum of input and output tokens."""
        return self.input_tokens + self.output_tokens

    def to_dict(self) -> dict[str, int]:
        """Return the counts as a plain dictionary."""
        return {
            "input_tokens": self.input_tokens,
            "output_tokens": self.output_tokens,
            "total_tokens": self.total_tokens,
        }


@dataclass
class TextResult:
    """Generated text with usage counts and the binding that served it."""

    text: str = ""
    usage: Usage = field(default_factory=Usage)
    provider: str | None = None
    model_id: str | None = None
    role: str | None = None


@dataclass
class ObjectResult:
    """A validated structured object with usage counts."""

    object: Any = None
    usage: Usage = field(default_factory=Usage)
    text: str = ""
    provider: str | None = None
    model_id: str | None = None
    role: str | None = None


@dataclass(frozen=True)
class StreamEvent:
    """One increment from a backend stream: a text delta and/or a usage update."""

    text: str = ""
    usage: Usage | None = None


class TextStream:
    """Async iterator of text deltas from an established backend stream.

    ``usage`` and ``text`` are final once iteration completes. A stream can
    be consumed only once.
    """

    def __init__(
        self,
        events: AsyncIterator[StreamEvent],
        *,
        on_close: Callable[[], Awaitable[None]] | None = None,
    ) -> None:
        """Wrap an adapter's event iterator; *on_close* releases its client."""
        self._events = events
        self._on_close = on_close
        self._chunks: list[str] = []
        self._started = False
        self.done = False
        self.usage = Usage()
        self.provider: str | None = None
        self.model_id: str | None = None
        self.role: str | None = None

    @property
    def text(self) -> str:
        """Text received so far."""
        return "".join(self._chunks)

    def __aiter__(self) -> AsyncIterator[str]:
        """Iterate text deltas."""
        if self._started:
            raise RuntimeError("TextStream can only be consumed once")
        self._started = True
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[str]:
        try:
            async for event in self._events:
                if event.usage is not None:
                    self.usage = event.usage
                if event.text:
                    self._chunks.append(event.text)
                    yield event.text
            self.done = True
        finally:
            await self.aclose()

    async def collect(self) -> str:
        """Drain the stream and return the full text."""
        async for _ in self:
            pass
        return self.text

    async def aclose(self) -> None:
        """Release the underlying client; safe to call more than once."""
        on_close, self._on_close = self._on_close, None
        if on_close is not None:
            await on_close()
