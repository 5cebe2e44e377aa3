"""Test helpers (small, reusable doubles).

Keep this file tiny and purpose-built: it exists to prevent test suites from
growing lots of one-off provider subclasses as coverage expands.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from rolecall.config import RoleSettings, Settings
from rolecall.errors import APIError
from rolecall.orchestrator import RoleRouter
from rolecall.providers.models import TextResult, Usage
from rolecall.providers.registry import ProviderRegistry
from tests.conftest import FakeProvider

if TYPE_CHECKING:
    from rolecall.providers.models import CallEnvelope, ObjectResult, TextStream

#: Session carrying a key for every backend the helpers register.
TEST_SESSION = {
    "ANTHROPIC_API_KEY": "sk-ant-test",
    "OPENAI_API_KEY": "sk-openai-test",
    "PERPLEXITY_API_KEY": "pplx-test",
}


def status_error(status_code: int, message: str = "backend failed") -> APIError:
    """Return an APIError carrying an HTTP status, as adapters produce."""
    return APIError(message, status_code=status_code, provider="test")


@dataclass
class ScriptedProvider(FakeProvider):
    """FakeProvider that returns a scripted sequence of results/exceptions.

    Items are consumed in order across all operations; an exhausted script
    falls through to FakeProvider's default responses. Every invocation is
    appended to ``log`` as ``(name, operation)`` and its envelope to
    ``attempts``. Share one ``log`` between providers to assert
    cross-provider ordering.
    """

    script: list[TextResult | BaseException] = field(default_factory=list)
    log: list[tuple[str, str]] = field(default_factory=list)
    attempts: list[CallEnvelope] = field(default_factory=list)

    @property
    def calls(self) -> int:
        return sum(1 for name, _ in self.log if name == self.name)

    def _next(self, operation: str, envelope: CallEnvelope) -> TextResult | None:
        self.log.append((self.name, operation))
        self.attempts.append(envelope)
        if not self.script:
            return None
        item = self.script.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item

    async def generate_text(self, envelope: CallEnvelope) -> TextResult:
        scripted = self._next("generate_text", envelope)
        if scripted is not None:
            self.envelopes.append(envelope)
            return scripted
        return await super().generate_text(envelope)

    async def stream_text(self, envelope: CallEnvelope) -> TextStream:
        self._next("stream_text", envelope)
        return await super().stream_text(envelope)

    async def generate_object(self, envelope: CallEnvelope) -> ObjectResult:
        self._next("generate_object", envelope)
        return await super().generate_object(envelope)


@dataclass
class RecordingSleep:
    """Awaitable sleep replacement that records requested delays."""

    delays: list[float] = field(default_factory=list)

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def make_settings(**roles: tuple[str | None, str | None]) -> Settings:
    """Build Settings mapping each role to ``(provider, model_id)``.

    Roles not named keep no backend, which makes them unresolvable.
    """
    return Settings(
        models={
            role: RoleSettings(provider=provider, model_id=model, max_tokens=256)
            for role, (provider, model) in roles.items()
        }
    )


def make_router(
    *providers: FakeProvider,
    settings: Settings,
    sleep: RecordingSleep | None = None,
) -> RoleRouter:
    """Build a router over *providers* with fixed settings and a fake sleep."""
    return RoleRouter(
        ProviderRegistry(list(providers)),
        settings=settings,
        sleep=sleep or RecordingSleep(),
    )


def text_result(text: str = "ok", *, input_tokens: int = 1, output_tokens: int = 1) -> TextResult:
    """Return a TextResult with the given usage."""
    return TextResult(
        text=text, usage=Usage(input_tokens=input_tokens, output_tokens=output_tokens)
    )


def object_fields(envelope: CallEnvelope) -> dict[str, Any]:
    """Return the object-generation fields of *envelope*."""
    return {
        "schema": envelope.schema,
        "object_name": envelope.object_name,
        "prompt": envelope.prompt,
        "max_retries": envelope.max_retries,
    }
