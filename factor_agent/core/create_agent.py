"""
Agent factories: sensible defaults, and construction from a loaded Config.
"""

from __future__ import annotations
import logging
from typing import TYPE_CHECKING, Iterable, Optional

from .agent import Agent
from .context_manager import ContextManagementConfig
from .middleware import error_recovery_middleware, todo_middleware
from .providers import ProviderFactory
from .stop_conditions import max_iterations

if TYPE_CHECKING:
    from ..config.settings import Config

logger = logging.getLogger(__name__)

DEFAULT_MAX_ITERATIONS = 10


def create_agent(
    provider,
    tools: Optional[Iterable] = None,
    instructions: str = "",
    stop_when=None,
    middleware=None,
    interrupt_on: Optional[Iterable[str]] = None,
    context_management: Optional[ContextManagementConfig] = None,
    **settings,
) -> Agent:
    """
    Build an Agent with the batteries-included defaults.

    Unset settings resolve to: stop after 10 iterations, the todo and
    error-recovery middleware, no interrupt_on tools, and a 150k-token
    context budget keeping the 3 most recent iterations verbatim.
    Passing an explicit value (even an empty list) disables the default.
    """
    if stop_when is None:
        stop_when = [max_iterations(DEFAULT_MAX_ITERATIONS)]
    if middleware is None:
        middleware = [todo_middleware(), error_recovery_middleware()]

    return Agent(
        provider=provider,
        tools=list(tools or []),
        instructions=instructions,
        stop_when=stop_when,
        middleware=middleware,
        interrupt_on=list(interrupt_on or []),
        context_management=context_management or ContextManagementConfig(),
        **settings,
    )


def create_agent_from_config(config: "Config", tools: Optional[Iterable] = None, **overrides) -> Agent:
    """Create the provider named in `config` and an agent using the config's agent settings."""
    provider = ProviderFactory.create(config.raw)
    logger.info(f"Using provider {provider!r}")

    settings = {
        "instructions": config.get("agent.instructions", ""),
        "stop_when": [max_iterations(config.get("agent.max_iterations", DEFAULT_MAX_ITERATIONS))],
        "interrupt_on": config.get("agent.interrupt_on", []),
        "max_tool_calls_per_iteration": config.get("agent.max_tool_calls_per_iteration", 20),
        "context_mode": config.get("agent.context_mode", "standard"),
        "parallel_tool_calls": bool(config.get("agent.parallel_tool_calls", False)),
        "context_management": ContextManagementConfig(
            max_context_tokens=config.get("context.max_context_tokens", 150_000),
            keep_recent_iterations=config.get("context.keep_recent_iterations", 3),
        ),
    }
    settings.update(overrides)
    return create_agent(provider, tools=tools, **settings)
