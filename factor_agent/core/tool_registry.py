"""
Tool Registry — central registry for all available tools.
Handles registration, ordered merging of tool sources, schema retrieval
and single-call execution.
"""

from __future__ import annotations
import json
import logging
import time
from dataclasses import dataclass
from typing import Callable, Iterable, Optional

from .models import ToolCall, ToolSchema

logger = logging.getLogger(__name__)

ConflictHandler = Callable[[str, str], None]


def _default_conflict_handler(tool_name: str, source_name: str) -> None:
    logger.warning(
        f'Tool conflict: "{tool_name}" from "{source_name}" overrides a previous definition'
    )


def merge_tools(
    sources: Iterable[tuple[str, Iterable]],
    on_conflict: Optional[ConflictHandler] = None,
) -> list:
    """
    Merge tools from an ordered list of (source_name, tools) pairs.

    Last writer wins: a later tool with an already-seen name replaces the
    earlier one in place and fires on_conflict(tool_name, source_name).
    """
    handler = on_conflict or _default_conflict_handler
    merged: list = []
    index: dict[str, int] = {}
    for source_name, tools in sources:
        for tool in tools:
            if tool.name in index:
                handler(tool.name, source_name)
                merged[index[tool.name]] = tool
            else:
                index[tool.name] = len(merged)
                merged.append(tool)
    return merged


def tool_array_to_map(tools: Iterable) -> dict:
    return {tool.name: tool for tool in tools}


def find_tool_by_name(tools: Iterable, name: str):
    for tool in tools:
        if tool.name == name:
            return tool
    return None


@dataclass
class ToolExecution:
    """Outcome of running one tool call."""
    output: str
    duration_ms: float
    success: bool
    error: Optional[str] = None


class ToolRegistry:
    """Central registry for all agent tools."""

    def __init__(self, tools: Optional[Iterable] = None):
        self._tools: dict = {}  # name -> BaseTool instance
        for tool in tools or []:
            self.register(tool)

    @classmethod
    def from_sources(
        cls,
        sources: Iterable[tuple[str, Iterable]],
        on_conflict: Optional[ConflictHandler] = None,
    ) -> "ToolRegistry":
        return cls(merge_tools(sources, on_conflict=on_conflict))

    def register(self, tool) -> None:
        """Register a tool instance (replaces any tool with the same name)."""
        self._tools[tool.name] = tool

    def get_tool(self, name: str):
        """Get a tool by name, or None if it is not registered."""
        return self._tools.get(name)

    def has_tool(self, name: str) -> bool:
        return name in self._tools

    def get_schemas(self) -> list[ToolSchema]:
        """Return all tool schemas for the LLM."""
        return [tool.get_schema() for tool in self._tools.values()]

    def list_tools(self) -> list[str]:
        return list(self._tools.keys())

    @property
    def tool_names(self) -> list[str]:
        return self.list_tools()

    def __len__(self) -> int:
        return len(self._tools)

    async def execute_tool(self, call: ToolCall) -> ToolExecution:
        """
        Execute a single tool call. Never raises: unknown tools and tool
        exceptions come back as error text.
        """
        t0 = time.perf_counter()
        tool = self.get_tool(call.name)
        if tool is None:
            logger.warning(f"Model requested unknown tool: {call.name}")
            return ToolExecution(
                output=f'Tool not found: "{call.name}"',
                duration_ms=(time.perf_counter() - t0) * 1000,
                success=False,
                error="not_found",
            )

        try:
            result = await tool.execute(**(call.args or {}))
        except Exception as e:
            duration_ms = (time.perf_counter() - t0) * 1000
            logger.warning(f"Tool '{call.name}' failed after {duration_ms:.0f}ms: {e}")
            return ToolExecution(
                output=f'Error executing tool "{call.name}": {type(e).__name__}: {e}',
                duration_ms=duration_ms,
                success=False,
                error=str(e),
            )

        duration_ms = (time.perf_counter() - t0) * 1000
        output = result if isinstance(result, str) else json.dumps(result, default=str)
        logger.debug(f"Tool '{call.name}' finished in {duration_ms:.0f}ms")
        return ToolExecution(output=output, duration_ms=duration_ms, success=True)
