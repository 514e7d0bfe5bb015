"""
E2E Test Helpers — MockLLMProvider, mock tools, agent factory.

Provides reusable components for tests that drive the full agent loop
(prompt → model → tool execution → events on the thread) without a real
LLM backend.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, List, Optional

from factor_agent.core.agent import Agent
from factor_agent.core.models import (
    ChatMessage, ModelResponse, TokenUsage, ToolCall, ToolSchema,
)
from factor_agent.core.providers.base import BaseLLMProvider, ProviderError


DEFAULT_USAGE = TokenUsage(input_tokens=100, output_tokens=50, total_tokens=150)


# ═══════════════════════════════════════════════════════════════════
#  MockLLMProvider
# ═══════════════════════════════════════════════════════════════════


class MockLLMProvider(BaseLLMProvider):
    """
    Queue-driven mock model client.

    Supports:
      - Queued responses (text, tool calls, or errors)
      - Call tracking for assertions
      - Simulated latency
      - Streaming simulation

    Usage::

        provider = MockLLMProvider()
        provider.enqueue_tool_call("search", {"query": "x"})
        provider.enqueue_text("Done.")

        agent = make_agent(provider=provider, tools=[MockTool("search")])
        result = await agent.loop("Find x")
    """

    def __init__(self, model: str = "mock-model", latency: float = 0.0):
        super().__init__(model=model)
        self._response_queue: List[Any] = []
        self._call_log: List[Dict[str, Any]] = []
        self._latency = latency
        self.usage = DEFAULT_USAGE

    # ── Enqueue helpers ─────────────────────────────────────────

    def enqueue(self, response: ModelResponse) -> None:
        self._response_queue.append(response)

    def enqueue_text(self, text: str, usage: Optional[TokenUsage] = None) -> None:
        """Enqueue a text-only response."""
        self._response_queue.append(ModelResponse(text=text, usage=usage or self.usage))

    def enqueue_tool_call(
        self,
        tool_name: str,
        args: Optional[dict] = None,
        tool_id: Optional[str] = None,
        extra_text: str = "",
    ) -> None:
        """Enqueue a response that requests one tool call."""
        call_id = tool_id or f"tc_{len(self._response_queue) + 1}"
        self._response_queue.append(ModelResponse(
            text=extra_text,
            tool_calls=[ToolCall(name=tool_name, id=call_id, args=args or {})],
            usage=self.usage,
        ))

    def enqueue_multi_tool_call(self, calls: List[Dict[str, Any]]) -> None:
        """Enqueue a response with several tool calls; each dict has name / args / id."""
        tool_calls = [
            ToolCall(name=c["name"], id=c.get("id", f"tc_multi_{i}"), args=c.get("args", {}))
            for i, c in enumerate(calls)
        ]
        self._response_queue.append(ModelResponse(tool_calls=tool_calls, usage=self.usage))

    def enqueue_error(self, error_msg: str = "Provider error") -> None:
        """Enqueue a response that raises ProviderError."""
        self._response_queue.append(_ErrorSentinel(error_msg))

    # ── BaseLLMProvider implementation ─────────────────────────

    async def invoke(
        self,
        messages: List[ChatMessage],
        tools: Optional[List[ToolSchema]] = None,
    ) -> ModelResponse:
        """Return next queued response, tracking the call."""
        if self._latency > 0:
            await asyncio.sleep(self._latency)

        self._call_log.append({
            "messages": list(messages),
            "tools": list(tools or []),
            "timestamp": time.time(),
        })

        if not self._response_queue:
            return ModelResponse(text="[MockLLMProvider] No more queued responses.", usage=self.usage)

        resp = self._response_queue.pop(0)
        if isinstance(resp, _ErrorSentinel):
            raise ProviderError("mock", resp.message)
        return resp

    async def stream(
        self,
        messages: List[ChatMessage],
        tools: Optional[List[ToolSchema]] = None,
    ) -> AsyncIterator[str]:
        """Simulate streaming by yielding the text word by word."""
        resp = await self.invoke(messages, tools)
        for word in resp.text.split():
            yield word + " "

    # ── Inspection helpers ──────────────────────────────────────

    @property
    def call_count(self) -> int:
        return len(self._call_log)

    @property
    def call_log(self) -> List[Dict[str, Any]]:
        return list(self._call_log)

    @property
    def remaining_responses(self) -> int:
        return len(self._response_queue)

    def get_last_call(self) -> Optional[Dict[str, Any]]:
        return self._call_log[-1] if self._call_log else None


@dataclass
class _ErrorSentinel:
    """Marker for enqueued errors (not a real ModelResponse)."""
    message: str


# ═══════════════════════════════════════════════════════════════════
#  Mock Tools
# ═══════════════════════════════════════════════════════════════════


class MockTool:
    """
    A configurable mock tool.

    Returns `output`, or raises RuntimeError(error) when `fail` is set.
    """

    def __init__(
        self,
        name: str = "mock_tool",
        description: str = "A mock tool for testing",
        schema: Optional[dict] = None,
        output: Any = "mock output",
        fail: bool = False,
        error: str = "Mock tool error",
        latency: float = 0.0,
    ):
        self.name = name
        self.description = description
        self.input_schema = schema or {
            "type": "object",
            "properties": {"input": {"type": "string"}},
        }
        self._output = output
        self._fail = fail
        self._error = error
        self._latency = latency
        self.call_log: List[Dict[str, Any]] = []

    def get_schema(self) -> ToolSchema:
        return ToolSchema(
            name=self.name,
            description=self.description,
            input_schema=self.input_schema,
        )

    async def execute(self, **kwargs) -> Any:
        if self._latency > 0:
            await asyncio.sleep(self._latency)
        self.call_log.append(kwargs)
        if self._fail:
            raise RuntimeError(self._error)
        return self._output


class RecordingTool(MockTool):
    """MockTool that records start/end order into a shared list (for concurrency tests)."""

    def __init__(self, name: str, timeline: list, latency: float = 0.0, **kwargs):
        super().__init__(name=name, latency=latency, **kwargs)
        self._timeline = timeline

    async def execute(self, **kwargs) -> Any:
        self._timeline.append(("start", self.name))
        result = await super().execute(**kwargs)
        self._timeline.append(("end", self.name))
        return result


# ═══════════════════════════════════════════════════════════════════
#  Agent Factory
# ═══════════════════════════════════════════════════════════════════


def make_agent(
    provider: Optional[MockLLMProvider] = None,
    tools: Optional[List[Any]] = None,
    **kwargs,
):
    """
    Create an Agent wired to a MockLLMProvider.

    Returns (agent, provider) for inspection.
    """
    prov = provider or MockLLMProvider()
    agent = Agent(provider=prov, tools=tools or [], **kwargs)
    return agent, prov


def run_async(coro):
    """Run an async function in a new event loop."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()
