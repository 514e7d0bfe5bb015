"""factor-agent: an event-sourced agent loop with stop conditions,
context compaction, middleware and human-in-the-loop pauses."""

from .core.agent import Agent, VerifyContext, VerifyResult
from .core.context_manager import ContextManagementConfig, ContextManager
from .core.create_agent import create_agent, create_agent_from_config
from .core.middleware import (
    AgentMiddleware, MiddlewareContext, compose_middleware,
    error_recovery_middleware, todo_middleware,
)
from .core.models import (
    AgentResult, PendingResult, PendingState, Thread, TokenUsage,
    add_usage, create_thread, is_pending_result,
)
from .core.providers import BaseLLMProvider, ProviderError, ProviderFactory
from .core.stop_conditions import (
    CostCalculator, MODEL_PRICING, calculate_cost, evaluate_stop_conditions, max_cost,
    max_input_tokens, max_iterations, max_output_tokens, max_tokens,
)
from .core.tool_registry import merge_tools
from .tools.base import BaseTool, create_tool
from .tools.request_human_input import RequestHumanInputTool

__version__ = "0.1.0"
