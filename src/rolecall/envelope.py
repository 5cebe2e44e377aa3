"""Call-parameter builder: assemble the envelope for one attempt."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from rolecall.connection import connection_strategy_for
from rolecall.providers.models import CallEnvelope, Message, Operation

if TYPE_CHECKING:
    from collections.abc import Mapping

    from rolecall.connection import ConnectionContext
    from rolecall.resolver import BackendBinding

# Keys owned by higher-precedence groups; role/caller parameters cannot set them.
_RESERVED_KEYS = frozenset(
    {"model", "messages", "schema", "object_name", "prompt", "max_retries"}
)


def build_messages(system_prompt: str | None, prompt: str | None) -> tuple[Message, ...]:
    """Return the optional system entry followed by the optional user entry."""
    messages: list[Message] = []
    if system_prompt:
        messages.append(Message(role="system", content=system_prompt))
    if prompt:
        messages.append(Message(role="user", content=prompt))
    return tuple(messages)


def build_envelope(
    binding: BackendBinding,
    *,
    operation: Operation,
    credential: str,
    context: ConnectionContext,
    system_prompt: str | None = None,
    prompt: str | None = None,
    extra_params: Mapping[str, Any] | None = None,
    schema: Any = None,
    object_name: str | None = None,
    max_retries: int | None = None,
) -> CallEnvelope:
    """Merge role defaults, caller parameters and connection fields.

    Precedence, lowest to highest: role parameters < caller parameters <
    message list < connection fields < object fields. Object fields (schema,
    object name, raw prompt) are attached only for object generation.
    """
    connection = connection_strategy_for(binding.provider).build(
        binding, credential, context
    )

    params: dict[str, Any] = {**binding.parameters, **(extra_params or {})}
    for key in _RESERVED_KEYS.union(connection):
        params.pop(key, None)

    is_object = operation is Operation.GENERATE_OBJECT
    return CallEnvelope(
        operation=operation,
        provider=binding.provider,
        model=binding.model_id,
        messages=build_messages(system_prompt, prompt),
        params=params,
        connection=connection,
        schema=schema if is_object else None,
        object_name=object_name if is_object else None,
        # Some backends take the prompt outside the message list for objects.
        prompt=prompt if is_object else None,
        max_retries=max_retries if is_object else None,
    )
