"""
Middleware — named bundles of lifecycle hooks and contributed tools.

A middleware is data, not a subclass: an optional before/after handler pair
plus a list of tools. compose_middleware() turns an ordered list of them
into one pipeline whose hooks run sequentially, in list order, each awaited
before the next (hooks mutate the shared thread).
"""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional, Union

from .models import ErrorEvent, MessageEvent, Thread
from .tool_registry import ConflictHandler, merge_tools
from ..tools.todo import ReadTodosTool, TodoStore, WriteTodosTool

logger = logging.getLogger(__name__)

MAX_ERROR_CHARS = 500


@dataclass
class MiddlewareContext:
    thread: Thread
    iteration: int
    settings: Any = None  # the Agent running this iteration


BeforeHook = Callable[[MiddlewareContext], Union[None, Awaitable[None]]]
AfterHook = Callable[[MiddlewareContext, Any], Union[None, Awaitable[None]]]


@dataclass
class AgentMiddleware:
    name: str
    tools: list = field(default_factory=list)
    before_iteration: Optional[BeforeHook] = None
    after_iteration: Optional[AfterHook] = None


async def call_hook(hook: Callable, *args) -> None:
    result = hook(*args)
    if inspect.isawaitable(result):
        await result


class ComposedMiddleware:
    """The merged tool list plus sequential before/after hooks."""

    def __init__(self, middlewares: list[AgentMiddleware], tools: list):
        self._middlewares = list(middlewares)
        self.tools = tools

    @property
    def names(self) -> list[str]:
        return [mw.name for mw in self._middlewares]

    async def before_iteration(self, ctx: MiddlewareContext) -> None:
        for mw in self._middlewares:
            if mw.before_iteration is not None:
                await call_hook(mw.before_iteration, ctx)

    async def after_iteration(self, ctx: MiddlewareContext, result: Any) -> None:
        for mw in self._middlewares:
            if mw.after_iteration is not None:
                await call_hook(mw.after_iteration, ctx, result)


def compose_middleware(
    middlewares: Optional[list[AgentMiddleware]] = None,
    on_conflict: Optional[ConflictHandler] = None,
) -> ComposedMiddleware:
    """
    Compose middleware in order.

    Tool name collisions resolve last-writer-wins so middleware appended
    after the built-ins can override them; on_conflict(tool_name,
    middleware_name) fires for each override (default: a logged warning).
    """
    middlewares = middlewares or []
    tools = merge_tools(
        ((mw.name, mw.tools) for mw in middlewares),
        on_conflict=on_conflict,
    )
    return ComposedMiddleware(middlewares, tools)


# ── Built-in middleware ─────────────────────────────────────────


def todo_middleware() -> AgentMiddleware:
    """write_todos / read_todos tools backed by a store private to this instance."""
    store = TodoStore()
    return AgentMiddleware(
        name="todo",
        tools=[WriteTodosTool(store), ReadTodosTool(store)],
    )


def error_recovery_middleware() -> AgentMiddleware:
    """After an iteration that ended in an error, nudge the model to change approach."""

    def after_iteration(ctx: MiddlewareContext, result: Any) -> None:
        events = ctx.thread.events
        if not events or not isinstance(events[-1], ErrorEvent):
            return
        error_msg = events[-1].error
        if len(error_msg) > MAX_ERROR_CHARS:
            error_msg = error_msg[:MAX_ERROR_CHARS] + "... [truncated]"
        ctx.thread.append(MessageEvent(
            role="system",
            content=(
                f"Error occurred: {error_msg}\n"
                "Consider an alternative approach if the same error occurs again."
            ),
            iteration=ctx.iteration,
        ))

    return AgentMiddleware(name="errorRecovery", after_iteration=after_iteration)
