"""
OpenAI LLM Provider — uses native tool_use / function_calling API.
"""

from __future__ import annotations
import json
import logging
import os
from typing import AsyncIterator, Optional

from .base import BaseLLMProvider, ProviderError
from ..models import ChatMessage, ModelResponse, TokenUsage, ToolCall, ToolSchema

logger = logging.getLogger(__name__)


class OpenAIProvider(BaseLLMProvider):
    """OpenAI provider with native tool_use support."""

    def __init__(self, model: str = "gpt-4o", api_key: Optional[str] = None,
                 base_url: str = "https://api.openai.com/v1", **kwargs):
        super().__init__(
            model=model,
            base_url=base_url,
            api_key=api_key or os.getenv("OPENAI_API_KEY"),
            **kwargs,
        )
        self._client = None

    def _get_client(self):
        if self._client is None:
            try:
                from openai import AsyncOpenAI
            except ImportError as e:
                raise ProviderError("openai", "openai package not installed. Run: pip install openai") from e
            self._client = AsyncOpenAI(
                api_key=self.api_key,
                base_url=self.base_url,
                timeout=self.timeout,
            )
        return self._client

    def _request(self, messages: list[ChatMessage], tools: Optional[list[ToolSchema]]) -> dict:
        request = {
            "model": self.model,
            "messages": self._convert_messages(messages),
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }
        if tools:
            request["tools"] = self._convert_tools(tools)
            request["tool_choice"] = "auto"
        return request

    async def invoke(
        self,
        messages: list[ChatMessage],
        tools: Optional[list[ToolSchema]] = None,
    ) -> ModelResponse:
        """Send messages using OpenAI's chat completions API with tools."""
        client = self._get_client()
        try:
            response = await client.chat.completions.create(**self._request(messages, tools))
        except Exception as e:
            raise ProviderError("openai", str(e)) from e

        message = response.choices[0].message
        tool_calls = []
        for tc in message.tool_calls or []:
            try:
                args = json.loads(tc.function.arguments or "{}")
            except json.JSONDecodeError:
                logger.warning(f"Unparseable tool arguments for {tc.function.name}")
                args = {}
            tool_calls.append(ToolCall(name=tc.function.name, id=tc.id, args=args))

        return ModelResponse(
            text=message.content or "",
            tool_calls=tool_calls,
            usage=self._parse_usage(getattr(response, "usage", None)),
            raw_response=response,
        )

    async def stream(
        self,
        messages: list[ChatMessage],
        tools: Optional[list[ToolSchema]] = None,
    ) -> AsyncIterator[str]:
        """Stream response tokens using OpenAI's streaming API."""
        client = self._get_client()
        try:
            stream = await client.chat.completions.create(
                **self._request(messages, tools), stream=True,
            )
            async for chunk in stream:
                if not chunk.choices:
                    continue
                delta = chunk.choices[0].delta
                if delta and delta.content:
                    yield delta.content
        except ProviderError:
            raise
        except Exception as e:
            raise ProviderError("openai", f"streaming failed: {e}") from e

    @staticmethod
    def _convert_tools(tools: list[ToolSchema]) -> list[dict]:
        """Convert to OpenAI function calling format."""
        return [
            {
                "type": "function",
                "function": {
                    "name": t.name,
                    "description": t.description,
                    "parameters": t.input_schema,
                },
            }
            for t in tools
        ]

    @staticmethod
    def _convert_messages(messages: list[ChatMessage]) -> list[dict]:
        """Convert internal messages to OpenAI format."""
        result = []
        for msg in messages:
            if msg.role == "tool":
                result.append({
                    "role": "tool",
                    "tool_call_id": msg.tool_call_id,
                    "content": msg.content,
                })
            elif msg.role == "assistant" and msg.tool_calls:
                result.append({
                    "role": "assistant",
                    "content": msg.content or None,
                    "tool_calls": [
                        {
                            "id": tc.id,
                            "type": "function",
                            "function": {
                                "name": tc.name,
                                "arguments": json.dumps(tc.args),
                            },
                        }
                        for tc in msg.tool_calls
                    ],
                })
            else:
                result.append({"role": msg.role, "content": msg.content})
        return result

    @staticmethod
    def _parse_usage(usage) -> TokenUsage:
        if usage is None:
            return TokenUsage()
        input_tokens = getattr(usage, "prompt_tokens", 0) or 0
        output_tokens = getattr(usage, "completion_tokens", 0) or 0
        details = getattr(usage, "prompt_tokens_details", None)
        cached = getattr(details, "cached_tokens", None) if details else None
        return TokenUsage(
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            total_tokens=getattr(usage, "total_tokens", None) or input_tokens + output_tokens,
            cache_read_tokens=cached,
        )
