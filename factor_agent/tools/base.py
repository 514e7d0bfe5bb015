"""
Base tool class — all tools inherit from this.
Defines the standard interface: name, description, schema, execute().
"""

from __future__ import annotations
import inspect
import json
from abc import ABC, abstractmethod
from typing import Any, Callable

from ..core.models import ToolSchema


class BaseTool(ABC):
    """Abstract base class for all agent tools."""

    name: str = ""
    description: str = ""
    input_schema: dict = {"type": "object", "properties": {}}

    @abstractmethod
    async def execute(self, **kwargs) -> Any:
        """
        Execute the tool with the model-supplied arguments.

        May return a string or any JSON-serializable value; the executor
        stringifies non-string results. Raising is allowed: the executor
        converts the exception into an error-text tool result.
        """

    def get_schema(self) -> ToolSchema:
        """Return the tool's schema for LLM consumption."""
        return ToolSchema(
            name=self.name,
            description=self.description,
            input_schema=self.input_schema,
        )

    @staticmethod
    def _json(payload: Any) -> str:
        return json.dumps(payload, default=str)


class FunctionTool(BaseTool):
    """Wraps a plain (sync or async) callable as a tool."""

    def __init__(
        self,
        name: str,
        description: str,
        execute: Callable[..., Any],
        input_schema: dict | None = None,
    ):
        self.name = name
        self.description = description
        self.input_schema = input_schema or {"type": "object", "properties": {}}
        self._fn = execute

    async def execute(self, **kwargs) -> Any:
        result = self._fn(**kwargs)
        if inspect.isawaitable(result):
            result = await result
        return result

    def __repr__(self) -> str:
        return f"FunctionTool(name={self.name!r})"


def create_tool(
    name: str,
    description: str,
    execute: Callable[..., Any],
    input_schema: dict | None = None,
) -> FunctionTool:
    """Build a tool from a callable. Non-string results are JSON-encoded by the executor."""
    return FunctionTool(name, description, execute, input_schema)
