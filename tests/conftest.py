"""Pytest configuration and fixtures.

Provides environment isolation, logging configuration, marker registration,
and automatic API test skipping. All fixtures here are autouse unless noted.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
import os
from typing import TYPE_CHECKING, Any

import pytest

from rolecall.credentials import CREDENTIAL_ENV_VARS
from rolecall.providers._utils import validate_object
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

# =============================================================================
# Test Doubles
# =============================================================================


@dataclass
class FakeProvider:
    """Provider test double for orchestration behavior verification.

    Captures envelopes and returns deterministic responses. Use to test
    routing, retry and fallback without making real API calls.
    """

    name: str = "anthropic"
    envelopes: list[CallEnvelope] = field(default_factory=list)
    usage: Usage = field(default_factory=lambda: Usage(input_tokens=10, output_tokens=5))
    credential_env_var: str | None = None

    def _prompt(self, envelope: CallEnvelope) -> str:
        users = [m.content for m in envelope.messages if m.role == "user"]
        return users[-1] if users else ""

    async def generate_text(self, envelope: CallEnvelope) -> TextResult:
        self.envelopes.append(envelope)
        return TextResult(text=f"ok:{self._prompt(envelope)}", usage=self.usage)

    async def stream_text(self, envelope: CallEnvelope) -> TextStream:
        self.envelopes.append(envelope)
        chunks = ["ok:", self._prompt(envelope)]
        usage = self.usage

        async def events() -> AsyncIterator[StreamEvent]:
            for chunk in chunks:
                yield StreamEvent(text=chunk)
            yield StreamEvent(usage=usage)

        return TextStream(events())

    async def generate_object(self, envelope: CallEnvelope) -> ObjectResult:
        self.envelopes.append(envelope)
        data: Any = {"answer": self._prompt(envelope) or envelope.prompt or ""}
        return ObjectResult(
            object=validate_object(envelope.schema, data, provider=self.name),
            usage=self.usage,
        )


# =============================================================================
# Environment Isolation (Autouse)
# =============================================================================


@pytest.fixture(autouse=True)
def block_dotenv(request, monkeypatch):
    """Prevent python-dotenv from reading project .env files during tests.

    Opt-out: @pytest.mark.allow_dotenv
    """
    if request.node.get_closest_marker("allow_dotenv"):
        return
    monkeypatch.setattr(
        "rolecall.credentials.dotenv_values", lambda *_args, **_kwargs: {}
    )


@pytest.fixture(autouse=True)
def isolate_provider_env(request, monkeypatch, tmp_path):
    """Ensure a clean provider environment for each test.

    Clears provider credential variables and ROLECALL_* settings, and points
    the home config at an empty location to prevent test pollution.
    Opt-out: @pytest.mark.allow_env_pollution or @pytest.mark.api
    """
    if request.node.get_closest_marker("allow_env_pollution") or (
        "api" in request.node.keywords
    ):
        return

    for key in {*CREDENTIAL_ENV_VARS.values(), "AWS_SECRET_ACCESS_KEY", "AWS_REGION"}:
        monkeypatch.delenv(key, raising=False)
    for key in list(os.environ.keys()):
        if key.startswith("ROLECALL_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("ROLECALL_CONFIG_HOME", str(tmp_path / "no-home-config.toml"))


# =============================================================================
# Logging
# =============================================================================


@pytest.fixture(scope="session", autouse=True)
def quiet_noisy_libraries():
    """Suppress noisy third-party loggers."""
    for name in ("httpx", "httpcore", "openai", "anthropic", "google_genai"):
        logging.getLogger(name).setLevel(logging.WARNING)


# =============================================================================
# Pytest Hooks
# =============================================================================

API_TESTS_REASON = "API tests require ENABLE_API_TESTS=1"


def _api_tests_enabled() -> bool:
    return bool(os.getenv("ENABLE_API_TESTS"))


def pytest_collection_modifyitems(items):
    """Automatically skip API tests when not explicitly enabled."""
    if _api_tests_enabled():
        return
    skip_api = pytest.mark.skip(reason=API_TESTS_REASON)
    for item in items:
        if "api" in item.keywords:
            item.add_marker(skip_api)


# =============================================================================
# Shared Fixtures
# =============================================================================


@pytest.fixture
def fake_provider() -> FakeProvider:
    """Return a fresh FakeProvider registered under ``anthropic``."""
    return FakeProvider()


@pytest.fixture
def project_root(tmp_path):
    """Return an empty project directory (no pyproject.toml, no .env)."""
    root = tmp_path / "project"
    root.mkdir()
    return root
