"""
Stop Conditions — predicates that can end the agent loop independently of
task completion.

A stop condition is a plain callable taking a StopConditionContext and
returning a StopConditionResult. The evaluator short-circuits on the first
condition that trips (OR semantics).

Also holds the static per-model pricing table used by max_cost().
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from .models import Thread, TokenUsage

logger = logging.getLogger(__name__)


@dataclass
class StopConditionContext:
    iteration: int
    usage: TokenUsage
    model: str
    thread: Thread


@dataclass
class StopConditionResult:
    stop: bool
    reason: Optional[str] = None


StopCondition = Callable[[StopConditionContext], StopConditionResult]


# ── Pricing ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class ModelPricing:
    """USD per million tokens for one model."""
    input_per_million: float
    output_per_million: float
    cache_read_per_million: Optional[float] = None
    cache_write_per_million: Optional[float] = None


MODEL_PRICING: dict[str, ModelPricing] = {
    # Anthropic
    "claude-sonnet-4-5": ModelPricing(3.0, 15.0, cache_read_per_million=0.30, cache_write_per_million=3.75),
    "claude-opus-4-5": ModelPricing(15.0, 75.0, cache_read_per_million=1.50, cache_write_per_million=18.75),
    "claude-haiku-4-5": ModelPricing(0.80, 4.0, cache_read_per_million=0.08, cache_write_per_million=1.0),
    # OpenAI
    "gpt-4o": ModelPricing(2.50, 10.0),
    "gpt-4o-mini": ModelPricing(0.15, 0.60),
    "gpt-4.1-mini": ModelPricing(0.40, 1.60),
    # Google
    "gemini-2.5-pro": ModelPricing(1.25, 10.0),
    "gemini-2.5-flash": ModelPricing(0.075, 0.30),
}


class CostCalculator:
    """
    Converts token usage into an estimated USD cost.

    Unknown models cost 0. The "unknown model" warning is logged once per
    model id for the lifetime of this instance.
    """

    def __init__(self, pricing_table: Optional[dict[str, ModelPricing]] = None):
        self._pricing = dict(pricing_table if pricing_table is not None else MODEL_PRICING)
        self._warned_models: set[str] = set()

    @property
    def warned_models(self) -> set[str]:
        return set(self._warned_models)

    def get_pricing(self, model: str) -> Optional[ModelPricing]:
        return self._pricing.get(model)

    def calculate_cost(self, usage: TokenUsage, model: str) -> float:
        pricing = self._pricing.get(model)
        if pricing is None:
            if model not in self._warned_models:
                self._warned_models.add(model)
                logger.warning(
                    f"Unknown model '{model}' in pricing table; cost will be reported as $0"
                )
            return 0.0

        cost = (
            usage.input_tokens * pricing.input_per_million
            + usage.output_tokens * pricing.output_per_million
        )
        if usage.cache_read_tokens is not None and pricing.cache_read_per_million is not None:
            cost += usage.cache_read_tokens * pricing.cache_read_per_million
        if usage.cache_write_tokens is not None and pricing.cache_write_per_million is not None:
            cost += usage.cache_write_tokens * pricing.cache_write_per_million
        return cost / 1_000_000


_default_calculator = CostCalculator()


def calculate_cost(usage: TokenUsage, model: str) -> float:
    """Estimated USD cost of `usage` on `model`, priced from MODEL_PRICING."""
    return _default_calculator.calculate_cost(usage, model)


# ── Stop condition factories ────────────────────────────────────


def max_iterations(n: int) -> StopCondition:
    def condition(ctx: StopConditionContext) -> StopConditionResult:
        if ctx.iteration >= n:
            return StopConditionResult(stop=True, reason=f"Max iterations ({n}) reached")
        return StopConditionResult(stop=False)
    return condition


def max_tokens(n: int) -> StopCondition:
    def condition(ctx: StopConditionContext) -> StopConditionResult:
        if ctx.usage.total_tokens >= n:
            return StopConditionResult(
                stop=True,
                reason=f"Max tokens ({n}) reached: {ctx.usage.total_tokens} total tokens used",
            )
        return StopConditionResult(stop=False)
    return condition


def max_input_tokens(n: int) -> StopCondition:
    def condition(ctx: StopConditionContext) -> StopConditionResult:
        if ctx.usage.input_tokens >= n:
            return StopConditionResult(
                stop=True,
                reason=f"Max input tokens ({n}) reached: {ctx.usage.input_tokens} input tokens used",
            )
        return StopConditionResult(stop=False)
    return condition


def max_output_tokens(n: int) -> StopCondition:
    def condition(ctx: StopConditionContext) -> StopConditionResult:
        if ctx.usage.output_tokens >= n:
            return StopConditionResult(
                stop=True,
                reason=f"Max output tokens ({n}) reached: {ctx.usage.output_tokens} output tokens used",
            )
        return StopConditionResult(stop=False)
    return condition


def max_cost(
    dollars: float,
    model: Optional[str] = None,
    calculator: Optional[CostCalculator] = None,
) -> StopCondition:
    """Stop once estimated spend reaches `dollars`. `model` overrides the agent's model id."""
    calc = calculator or CostCalculator()

    def condition(ctx: StopConditionContext) -> StopConditionResult:
        model_id = model or ctx.model
        cost = calc.calculate_cost(ctx.usage, model_id)
        if calc.get_pricing(model_id) is None:
            return StopConditionResult(stop=False)
        if cost >= dollars:
            return StopConditionResult(
                stop=True,
                reason=f"Max cost (${dollars:.2f}) reached: ${cost:.4f} spent",
            )
        return StopConditionResult(stop=False)
    return condition


def evaluate_stop_conditions(
    conditions: list[StopCondition],
    ctx: StopConditionContext,
) -> Optional[StopConditionResult]:
    """Return the first triggering condition's result, or None."""
    for condition in conditions:
        result = condition(ctx)
        if result.stop:
            return result
    return None
