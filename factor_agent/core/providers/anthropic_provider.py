"""
Anthropic LLM Provider — uses native tool_use API.
"""

from __future__ import annotations
import os
from typing import AsyncIterator, Optional

from .base import BaseLLMProvider, ProviderError
from ..models import ChatMessage, ModelResponse, TokenUsage, ToolCall, ToolSchema


class AnthropicProvider(BaseLLMProvider):
    """Anthropic provider with native tool_use support."""

    def __init__(self, model: str = "claude-sonnet-4-5",
                 api_key: Optional[str] = None, **kwargs):
        super().__init__(
            model=model,
            api_key=api_key or os.getenv("ANTHROPIC_API_KEY"),
            **kwargs,
        )
        self._client = None

    def _get_client(self):
        if self._client is None:
            try:
                from anthropic import AsyncAnthropic
            except ImportError as e:
                raise ProviderError(
                    "anthropic", "anthropic package not installed. Run: pip install anthropic",
                ) from e
            self._client = AsyncAnthropic(api_key=self.api_key, timeout=self.timeout)
        return self._client

    def _request(self, messages: list[ChatMessage], tools: Optional[list[ToolSchema]]) -> dict:
        system, conversation = self.split_system(messages)
        request = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "messages": self._convert_messages(conversation),
            "temperature": self.temperature,
        }
        if system:
            request["system"] = system
        if tools:
            request["tools"] = self._convert_tools(tools)
        return request

    async def invoke(
        self,
        messages: list[ChatMessage],
        tools: Optional[list[ToolSchema]] = None,
    ) -> ModelResponse:
        """Send messages using Anthropic's Messages API with tools."""
        client = self._get_client()
        try:
            response = await client.messages.create(**self._request(messages, tools))
        except Exception as e:
            raise ProviderError("anthropic", str(e)) from e

        text_parts = []
        tool_calls = []
        for block in response.content:
            if block.type == "text":
                text_parts.append(block.text)
            elif block.type == "tool_use":
                tool_calls.append(ToolCall(name=block.name, id=block.id, args=dict(block.input or {})))

        return ModelResponse(
            text="\n".join(text_parts),
            tool_calls=tool_calls,
            usage=self._parse_usage(getattr(response, "usage", None)),
            raw_response=response,
        )

    async def stream(
        self,
        messages: list[ChatMessage],
        tools: Optional[list[ToolSchema]] = None,
    ) -> AsyncIterator[str]:
        """Stream response tokens using Anthropic's native streaming API."""
        client = self._get_client()
        try:
            async with client.messages.stream(**self._request(messages, tools)) as stream:
                async for text in stream.text_stream:
                    yield text
        except Exception as e:
            raise ProviderError("anthropic", f"streaming failed: {e}") from e

    @staticmethod
    def _convert_tools(tools: list[ToolSchema]) -> list[dict]:
        """Convert to Anthropic tools format."""
        return [
            {
                "name": t.name,
                "description": t.description,
                "input_schema": t.input_schema,
            }
            for t in tools
        ]

    @staticmethod
    def _convert_messages(messages: list[ChatMessage]) -> list[dict]:
        """
        Convert internal messages to Anthropic format.

        Tool results become user-side tool_result blocks and consecutive
        same-role messages are merged, since the API requires alternation.
        """
        result: list[dict] = []

        def push(role: str, blocks: list[dict]) -> None:
            if result and result[-1]["role"] == role:
                result[-1]["content"].extend(blocks)
            else:
                result.append({"role": role, "content": blocks})

        for msg in messages:
            if msg.role == "tool":
                push("user", [{
                    "type": "tool_result",
                    "tool_use_id": msg.tool_call_id,
                    "content": msg.content,
                }])
            elif msg.role == "assistant":
                blocks = [{"type": "text", "text": msg.content}] if msg.content else []
                blocks.extend(
                    {"type": "tool_use", "id": tc.id, "name": tc.name, "input": tc.args}
                    for tc in msg.tool_calls
                )
                if blocks:
                    push("assistant", blocks)
            else:
                push("user", [{"type": "text", "text": msg.content}])
        return result

    @staticmethod
    def _parse_usage(usage) -> TokenUsage:
        if usage is None:
            return TokenUsage()
        input_tokens = getattr(usage, "input_tokens", 0) or 0
        output_tokens = getattr(usage, "output_tokens", 0) or 0
        return TokenUsage(
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            total_tokens=input_tokens + output_tokens,
            cache_read_tokens=getattr(usage, "cache_read_input_tokens", None),
            cache_write_tokens=getattr(usage, "cache_creation_input_tokens", None),
        )
