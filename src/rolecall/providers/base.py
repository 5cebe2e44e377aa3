"""Provider protocol: minimal interface for backend adapters."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from rolecall.providers.models import (
        CallEnvelope,
        ObjectResult,
        TextResult,
        TextStream,
    )


@runtime_checkable
class Provider(Protocol):
    """Minimal provider protocol: generate text, stream text, generate object.

    Adapters hold no per-call state; everything an attempt needs (model,
    messages, credential, endpoint) arrives in the envelope.

    Adapters for backends without a built-in credential mapping may set a
    ``credential_env_var`` attribute naming the variable that holds their key.
    """

    name: str

    async def generate_text(self, envelope: CallEnvelope) -> TextResult:
        """Generate a complete text response."""
        ...

    async def stream_text(self, envelope: CallEnvelope) -> TextStream:
        """Open a text stream; errors establishing it raise here."""
        ...

    async def generate_object(self, envelope: CallEnvelope) -> ObjectResult:
        """Generate an object validated against ``envelope.schema``."""
        ...
