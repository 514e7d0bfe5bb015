"""Model clients. Importing this package registers the built-in providers."""

from .base import BaseLLMProvider, ProviderError, ProviderFactory
from .ollama import OllamaProvider
from .openai_provider import OpenAIProvider
from .anthropic_provider import AnthropicProvider

ProviderFactory.register("ollama", OllamaProvider)
ProviderFactory.register("openai", OpenAIProvider)
ProviderFactory.register("anthropic", AnthropicProvider)

__all__ = [
    "AnthropicProvider",
    "BaseLLMProvider",
    "OllamaProvider",
    "OpenAIProvider",
    "ProviderError",
    "ProviderFactory",
]
