"""Binding resolution, connection strategies and envelope assembly."""

from __future__ import annotations

import pytest

from rolecall.config import RoleSettings, Settings
from rolecall.connection import (
    CONNECTION_STRATEGIES,
    DEFAULT_CONNECTION,
    ConnectionContext,
    connection_strategy_for,
)
from rolecall.envelope import build_envelope, build_messages
from rolecall.errors import NotConfiguredError
from rolecall.providers.models import Operation
from rolecall.providers.registry import ProviderRegistry
from rolecall.resolver import BackendBinding, resolve_binding
from rolecall.roles import Role
from tests.conftest import FakeProvider

pytestmark = pytest.mark.unit

_REGISTRY = ProviderRegistry([FakeProvider(name="openai"), FakeProvider(name="ollama")])


def _binding(provider: str = "openai", **kwargs) -> BackendBinding:
    return BackendBinding(
        role=kwargs.pop("role", Role.PRIMARY),
        provider=provider,
        model_id=kwargs.pop("model_id", "gpt-4o"),
        **kwargs,
    )


def _context(**settings) -> ConnectionContext:
    return ConnectionContext(settings=Settings(**settings))


# --- Resolver ---


class TestResolveBinding:
    def test_resolves_provider_model_and_parameters(self):
        settings = Settings(
            models={
                "primary": RoleSettings(
                    provider="OpenAI", model_id="gpt-4o", max_tokens=100, temperature=0.3
                )
            }
        )
        binding = resolve_binding("primary", settings, _REGISTRY)
        assert binding.provider == "openai"
        assert binding.model_id == "gpt-4o"
        assert dict(binding.parameters) == {"max_tokens": 100, "temperature": 0.3}

    def test_missing_model_is_not_configured(self):
        settings = Settings(models={"research": RoleSettings(provider="openai")})
        with pytest.raises(NotConfiguredError) as exc_info:
            resolve_binding(Role.RESEARCH, settings, _REGISTRY)
        assert exc_info.value.role == "research"

    def test_unmapped_role_is_not_configured(self):
        with pytest.raises(NotConfiguredError):
            resolve_binding(Role.FALLBACK, Settings(models={}), _REGISTRY)

    def test_unregistered_provider_is_not_configured(self):
        settings = Settings(
            models={"primary": RoleSettings(provider="mystery", model_id="m")}
        )
        with pytest.raises(NotConfiguredError) as exc_info:
            resolve_binding(Role.PRIMARY, settings, _REGISTRY)
        assert "not configured or supported" in str(exc_info.value)
        assert exc_info.value.provider == "mystery"


# --- Connection strategies ---


class TestConnectionStrategies:
    def test_unknown_backends_use_the_api_key_default(self):
        assert connection_strategy_for("openai") is DEFAULT_CONNECTION
        assert connection_strategy_for("AZURE") is CONNECTION_STRATEGIES["azure"]

    def test_api_key_with_role_base_url(self):
        fields = connection_strategy_for("openai").build(
            _binding(base_url="https://proxy.example/v1"), "sk-1", _context()
        )
        assert fields == {"api_key": "sk-1", "base_url": "https://proxy.example/v1"}

    def test_api_key_without_base_url(self):
        fields = connection_strategy_for("anthropic").build(
            _binding("anthropic"), "sk-ant", _context()
        )
        assert fields == {"api_key": "sk-ant"}

    def test_ollama_falls_back_to_global_base_url(self):
        fields = connection_strategy_for("ollama").build(
            _binding("ollama"), "", _context(ollama_base_url="http://gpu-box:11434/v1")
        )
        assert fields == {"api_key": "", "base_url": "http://gpu-box:11434/v1"}

    def test_azure_requires_an_endpoint(self):
        with pytest.raises(NotConfiguredError):
            connection_strategy_for("azure").build(_binding("azure"), "k", _context())

        fields = connection_strategy_for("azure").build(
            _binding("azure"), "k", _context(azure_base_url="https://res.openai.azure.com")
        )
        assert fields["base_url"] == "https://res.openai.azure.com"

    def test_bedrock_reads_secret_and_region(self, monkeypatch):
        monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "aws-secret")
        fields = connection_strategy_for("bedrock").build(
            _binding("bedrock"), "AKIA123", _context(aws_region="eu-west-1")
        )
        assert fields == {
            "access_key_id": "AKIA123",
            "secret_access_key": "aws-secret",
            "region": "eu-west-1",
        }

    def test_bedrock_region_prefers_environment(self, monkeypatch):
        monkeypatch.setenv("AWS_REGION", "ap-south-1")
        fields = connection_strategy_for("bedrock").build(
            _binding("bedrock"), "", _context()
        )
        assert fields["region"] == "ap-south-1"

    def test_vertex_project_and_location(self):
        fields = connection_strategy_for("vertex").build(
            _binding("vertex"), "g-key", _context(vertex_project_id="proj-1")
        )
        assert fields == {
            "api_key": "g-key",
            "project_id": "proj-1",
            "location": "us-central1",
        }


# --- Envelope ---


class TestBuildMessages:
    def test_system_then_user(self):
        messages = build_messages("be terse", "hello")
        assert [m.to_dict() for m in messages] == [
            {"role": "system", "content": "be terse"},
            {"role": "user", "content": "hello"},
        ]

    def test_empty_only_when_nothing_supplied(self):
        assert build_messages(None, None) == ()
        assert len(build_messages(None, "hi")) == 1
        assert len(build_messages("sys", None)) == 1


class TestBuildEnvelope:
    def _build(self, operation=Operation.GENERATE_TEXT, **kwargs):
        binding = _binding(
            parameters={"max_tokens": 100, "temperature": 0.2},
            base_url=kwargs.pop("base_url", None),
        )
        return build_envelope(
            binding,
            operation=operation,
            credential="sk-1",
            context=_context(),
            system_prompt=kwargs.pop("system_prompt", "sys"),
            prompt=kwargs.pop("prompt", "hello"),
            **kwargs,
        )

    def test_caller_parameters_override_role_defaults(self):
        envelope = self._build(extra_params={"temperature": 0.9, "top_p": 0.5})
        assert dict(envelope.params) == {
            "max_tokens": 100,
            "temperature": 0.9,
            "top_p": 0.5,
        }

    def test_caller_cannot_override_messages_or_connection(self):
        envelope = self._build(
            extra_params={
                "messages": [{"role": "user", "content": "injected"}],
                "api_key": "caller-key",
                "model": "other",
            }
        )
        flat = envelope.as_kwargs()
        assert flat["messages"][-1]["content"] == "hello"
        assert flat["api_key"] == "sk-1"
        assert flat["model"] == "gpt-4o"

    def test_object_fields_only_for_object_generation(self):
        schema = {"type": "object", "properties": {"answer": {"type": "string"}}}
        text = self._build(schema=schema, object_name="answer", max_retries=2)
        assert (text.schema, text.object_name, text.prompt, text.max_retries) == (
            None,
            None,
            None,
            None,
        )
        assert "schema" not in text.as_kwargs()

        obj = self._build(
            Operation.GENERATE_OBJECT, schema=schema, object_name="answer", max_retries=2
        )
        flat = obj.as_kwargs()
        assert flat["schema"] == schema
        assert flat["object_name"] == "answer"
        assert flat["prompt"] == "hello"
        assert flat["max_retries"] == 2

    def test_connection_fields_from_strategy(self):
        envelope = self._build(base_url="https://proxy.example/v1")
        assert envelope.api_key == "sk-1"
        assert envelope.connection["base_url"] == "https://proxy.example/v1"
        assert envelope.system_prompt == "sys"
        assert envelope.conversation() == [{"role": "user", "content": "hello"}]


@pytest.mark.security
def test_envelope_repr_redacts_credentials():
    envelope = build_envelope(
        _binding(),
        operation=Operation.GENERATE_TEXT,
        credential="sk-super-secret-123",
        context=_context(),
        prompt="hi",
    )
    assert "sk-super-secret-123" not in repr(envelope)
    assert "sk-super-secret-123" not in str(envelope)
    assert "[REDACTED]" in repr(envelope)
