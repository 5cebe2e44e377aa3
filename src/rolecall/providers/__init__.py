"""Provider implementations."""

from .anthropic import AnthropicProvider, BedrockProvider
from .base import Provider
from .claude_code import ClaudeCodeProvider
from .gemini import GeminiProvider
from .openai import AzureOpenAIProvider, OpenAICompatibleProvider
from .registry import ProviderRegistry, default_registry

__all__ = [
    "AnthropicProvider",
    "AzureOpenAIProvider",
    "BedrockProvider",
    "ClaudeCodeProvider",
    "GeminiProvider",
    "OpenAICompatibleProvider",
    "Provider",
    "ProviderRegistry",
    "default_registry",
]
