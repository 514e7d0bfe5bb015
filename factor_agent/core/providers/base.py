"""
Abstract base class for LLM providers (model clients).
All providers (Ollama, OpenAI, Anthropic) implement this interface.
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from typing import AsyncIterator, Optional

from ..models import ChatMessage, ModelResponse, ToolSchema


class ProviderError(RuntimeError):
    """A model call failed (transport, HTTP status, SDK error)."""

    def __init__(self, provider: str, message: str):
        self.provider = provider
        super().__init__(f"{provider}: {message}")


class BaseLLMProvider(ABC):
    """Abstract LLM provider interface."""

    def __init__(self, model: str, base_url: Optional[str] = None, api_key: Optional[str] = None, **kwargs):
        self.model = model
        self.base_url = base_url
        self._api_key = api_key
        self.temperature = kwargs.get("temperature", 0.7)
        self.max_tokens = kwargs.get("max_tokens", 4096)
        self.timeout = kwargs.get("timeout", 300)

    @property
    def api_key(self) -> Optional[str]:
        """Access the API key (property to avoid accidental logging)."""
        return self._api_key

    def __repr__(self) -> str:
        """Mask API key in repr to prevent accidental logging."""
        masked = f"***{self._api_key[-4:]}" if self._api_key and len(self._api_key) > 4 else "***"
        return (
            f"{self.__class__.__name__}(model={self.model!r}, "
            f"api_key={masked!r})"
        )

    @abstractmethod
    async def invoke(
        self,
        messages: list[ChatMessage],
        tools: Optional[list[ToolSchema]] = None,
    ) -> ModelResponse:
        """
        Send the conversation to the model and return one turn.

        Args:
            messages: Model input; a leading system message carries the prompt
            tools: Tool schemas bound for this call

        Raises:
            ProviderError: on any transport or API failure
        """

    async def stream(
        self,
        messages: list[ChatMessage],
        tools: Optional[list[ToolSchema]] = None,
    ) -> AsyncIterator[str]:
        """
        Stream response text chunks.

        Default implementation: falls back to invoke() and yields the full text.
        Override in subclasses for true streaming.
        """
        response = await self.invoke(messages, tools)
        if response.text:
            yield response.text

    @staticmethod
    def split_system(messages: list[ChatMessage]) -> tuple[str, list[ChatMessage]]:
        """Separate system messages (joined) from the rest of the conversation."""
        system = "\n\n".join(m.content for m in messages if m.role == "system")
        return system, [m for m in messages if m.role != "system"]

    @property
    def provider_name(self) -> str:
        return self.__class__.__name__


class ProviderFactory:
    """Create LLM provider from config."""

    _providers: dict[str, type[BaseLLMProvider]] = {}

    @classmethod
    def register(cls, name: str, provider_class: type[BaseLLMProvider]):
        cls._providers[name] = provider_class

    @classmethod
    def available(cls) -> list[str]:
        return sorted(cls._providers)

    @classmethod
    def create(cls, config: dict) -> BaseLLMProvider:
        """
        Create provider from config dict.

        Config structure:
            llm:
              provider: "ollama"
              model: "llama3.1"
              temperature: 0.7
              max_tokens: 4096
            providers:
              ollama:
                base_url: "http://localhost:11434"
                timeout: 300
        """
        llm_config = config.get("llm", {})
        provider_name = llm_config.get("provider", "ollama")
        provider_config = config.get("providers", {}).get(provider_name) or {}

        if provider_name not in cls._providers:
            raise ValueError(
                f"Unknown provider: {provider_name}. "
                f"Available: {cls.available()}"
            )

        provider_class = cls._providers[provider_name]
        kwargs = {
            "temperature": llm_config.get("temperature", 0.7),
            "max_tokens": llm_config.get("max_tokens", 4096),
            **provider_config,
        }
        if llm_config.get("model"):
            kwargs["model"] = llm_config["model"]
        return provider_class(**kwargs)
