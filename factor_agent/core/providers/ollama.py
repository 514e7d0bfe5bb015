"""
Ollama LLM Provider.

Talks to a local (or remote) Ollama server over its /api/chat endpoint
with native tool calling. Supports both streaming and non-streaming modes.
"""

from __future__ import annotations
import json
import logging
from typing import AsyncIterator, Optional

import httpx

from .base import BaseLLMProvider, ProviderError
from ..models import ChatMessage, ModelResponse, TokenUsage, ToolCall, ToolSchema

logger = logging.getLogger(__name__)


class OllamaProvider(BaseLLMProvider):
    """Ollama provider with native tool calling."""

    def __init__(self, model: str = "llama3.1", base_url: str = "http://localhost:11434", **kwargs):
        super().__init__(model=model, base_url=base_url.rstrip("/"), **kwargs)

    def _payload(self, messages: list[ChatMessage], tools: Optional[list[ToolSchema]], stream: bool) -> dict:
        payload = {
            "model": self.model,
            "messages": self._convert_messages(messages),
            "stream": stream,
            "options": {
                "temperature": self.temperature,
                "num_predict": self.max_tokens,
            },
        }
        if tools:
            payload["tools"] = self._convert_tools(tools)
        return payload

    async def invoke(
        self,
        messages: list[ChatMessage],
        tools: Optional[list[ToolSchema]] = None,
    ) -> ModelResponse:
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    f"{self.base_url}/api/chat",
                    json=self._payload(messages, tools, stream=False),
                )
                response.raise_for_status()
                data = response.json()
        except httpx.ConnectError as e:
            raise ProviderError(
                "ollama",
                f"Cannot connect to Ollama at {self.base_url}. "
                "Make sure Ollama is running (ollama serve).",
            ) from e
        except httpx.HTTPStatusError as e:
            raise ProviderError("ollama", f"HTTP {e.response.status_code}: {e.response.text[:300]}") from e
        except httpx.HTTPError as e:
            raise ProviderError("ollama", str(e)) from e

        message = data.get("message", {})
        logger.debug(f"Ollama done_reason: {data.get('done_reason', 'unknown')}")
        return ModelResponse(
            text=message.get("content") or "",
            tool_calls=self._parse_tool_calls(message.get("tool_calls") or []),
            usage=self._parse_usage(data),
            raw_response=data,
        )

    async def stream(
        self,
        messages: list[ChatMessage],
        tools: Optional[list[ToolSchema]] = None,
    ) -> AsyncIterator[str]:
        """Yield text chunks as Ollama streams them (one JSON object per line)."""
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                async with client.stream(
                    "POST",
                    f"{self.base_url}/api/chat",
                    json=self._payload(messages, tools, stream=True),
                ) as response:
                    response.raise_for_status()
                    async for line in response.aiter_lines():
                        if not line.strip():
                            continue
                        chunk = json.loads(line)
                        text = chunk.get("message", {}).get("content", "")
                        if text:
                            yield text
                        if chunk.get("done"):
                            break
        except httpx.HTTPError as e:
            raise ProviderError("ollama", f"streaming failed: {e}") from e

    @staticmethod
    def _convert_tools(tools: list[ToolSchema]) -> list[dict]:
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
        result = []
        for msg in messages:
            if msg.role == "assistant" and msg.tool_calls:
                result.append({
                    "role": "assistant",
                    "content": msg.content or "",
                    "tool_calls": [
                        {"function": {"name": tc.name, "arguments": tc.args}}
                        for tc in msg.tool_calls
                    ],
                })
            else:
                result.append({"role": msg.role, "content": msg.content})
        return result

    @staticmethod
    def _parse_tool_calls(raw_calls: list[dict]) -> list[ToolCall]:
        calls = []
        for raw in raw_calls:
            fn = raw.get("function", {})
            args = fn.get("arguments") or {}
            if isinstance(args, str):
                try:
                    args = json.loads(args)
                except json.JSONDecodeError:
                    logger.warning(f"Unparseable tool arguments for {fn.get('name')}: {args[:100]}")
                    args = {}
            calls.append(ToolCall(
                name=fn.get("name", ""),
                id=raw.get("id") or ToolCall.generate_id(),
                args=args,
            ))
        return calls

    @staticmethod
    def _parse_usage(data: dict) -> TokenUsage:
        input_tokens = data.get("prompt_eval_count", 0) or 0
        output_tokens = data.get("eval_count", 0) or 0
        return TokenUsage(
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            total_tokens=input_tokens + output_tokens,
        )
