"""Immutable backend registry: backend name -> adapter instance."""

from __future__ import annotations

from functools import cache
from types import MappingProxyType
from typing import TYPE_CHECKING

from rolecall.errors import ConfigurationError

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator, Mapping

    from rolecall.providers.base import Provider


class ProviderRegistry:
    """Read-only adapter lookup, matched case-insensitively.

    Built once and shared across requests; there is no way to add or remove
    adapters after construction.
    """

    def __init__(self, providers: Mapping[str, Provider] | Iterable[Provider]) -> None:
        """Index *providers* by lower-cased name."""
        if hasattr(providers, "items"):
            items = list(providers.items())  # type: ignore[union-attr]
        else:
            items = [(p.name, p) for p in providers]  # type: ignore[union-attr]

        index: dict[str, Provider] = {}
        for name, provider in items:
            key = name.strip().lower()
            if key in index:
                raise ConfigurationError(f"Duplicate provider name: {name!r}")
            index[key] = provider
        self._providers: Mapping[str, Provider] = MappingProxyType(index)

    def get(self, name: str | None) -> Provider | None:
        """Return the adapter for *name*, or None when unknown or empty."""
        if not name:
            return None
        return self._providers.get(name.strip().lower())

    def __contains__(self, name: object) -> bool:
        """Support ``"openai" in registry``."""
        return isinstance(name, str) and self.get(name) is not None

    def __iter__(self) -> Iterator[str]:
        """Iterate registered names."""
        return iter(self._providers)

    def __len__(self) -> int:
        """Number of registered adapters."""
        return len(self._providers)

    def names(self) -> tuple[str, ...]:
        """Registered names in sorted order."""
        return tuple(sorted(self._providers))

    def __repr__(self) -> str:
        """Return the registered names."""
        return f"ProviderRegistry({', '.join(self.names())})"


@cache
def default_registry() -> ProviderRegistry:
    """Return the process-wide registry of built-in adapters."""
    from rolecall.providers.anthropic import AnthropicProvider, BedrockProvider
    from rolecall.providers.claude_code import ClaudeCodeProvider
    from rolecall.providers.gemini import GeminiProvider
    from rolecall.providers.openai import AzureOpenAIProvider, OpenAICompatibleProvider

    return ProviderRegistry(
        [
            AnthropicProvider(),
            BedrockProvider(),
            OpenAICompatibleProvider("openai"),
            OpenAICompatibleProvider(
                "perplexity",
                default_base_url="https://api.perplexity.ai",
                strict_schema=False,
                stream_usage=False,
            ),
            OpenAICompatibleProvider("xai", default_base_url="https://api.x.ai/v1"),
            OpenAICompatibleProvider(
                "openrouter",
                default_base_url="https://openrouter.ai/api/v1",
                strict_schema=False,
            ),
            OpenAICompatibleProvider(
                "ollama",
                default_base_url="http://localhost:11434/v1",
                strict_schema=False,
            ),
            AzureOpenAIProvider(),
            GeminiProvider("google"),
            GeminiProvider("vertex", vertex=True),
            ClaudeCodeProvider(),
        ]
    )
