"""
Context Manager — keeps a thread inside the model's context budget.

Estimates the token size of a thread, decides when it has grown past the
budget, and compacts older iterations into model-written SummaryEvents.
The summaries are then rendered into every subsequent system prompt.

Compaction is destructive: raw events of summarized iterations are removed
from the thread and cannot be recovered afterwards.
"""

from __future__ import annotations
import json
import logging
import math
from collections import defaultdict
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Optional

from .models import ChatMessage, SummaryEvent, Thread, TokenUsage, event_to_dict

if TYPE_CHECKING:
    from .providers.base import BaseLLMProvider

logger = logging.getLogger(__name__)

# Rough chars-per-token estimate. Only gates when summarization fires,
# never billing.
CHARS_PER_TOKEN = 3.5

SUMMARY_PROMPT = (
    "Summarize the following agent iteration events in 2-3 sentences. "
    "Focus on what tools were called, what was accomplished, and any errors:\n\n"
)


def estimate_tokens(text: str) -> int:
    if not text:
        return 0
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def _serialize_event(event) -> str:
    return json.dumps(event_to_dict(event), default=str, ensure_ascii=False)


@dataclass
class ContextManagementConfig:
    max_context_tokens: int = 150_000
    keep_recent_iterations: int = 3
    token_estimator: Optional[Callable[[str], int]] = None


class ContextManager:
    """
    Manages thread size to prevent context window overflow.

    Strategy:
      1. Estimate tokens per event (JSON length / 3.5 by default)
      2. When the total exceeds max_context_tokens, summarize every
         iteration older than the most recent `keep_recent_iterations`
      3. Inject the summaries into the system prompt
    """

    def __init__(self, config: Optional[ContextManagementConfig] = None):
        config = config or ContextManagementConfig()
        self.max_context_tokens = config.max_context_tokens
        self.keep_recent_iterations = config.keep_recent_iterations
        self._estimator = config.token_estimator or estimate_tokens

    def estimate_thread_tokens(self, thread: Thread) -> int:
        return sum(self._estimator(_serialize_event(e)) for e in thread.events)

    def needs_summarization(self, thread: Thread) -> bool:
        return self.estimate_thread_tokens(thread) > self.max_context_tokens

    async def summarize(self, thread: Thread, provider: "BaseLLMProvider") -> TokenUsage:
        """
        Replace events of old iterations with SummaryEvents.

        Returns the token usage spent on summarization calls. A failing
        summarization call degrades to a placeholder summary instead of
        dropping the iteration's context entirely.
        """
        usage = TokenUsage()

        by_iteration: dict[int, list] = defaultdict(list)
        for event in thread.events:
            by_iteration[event.iteration].append(event)
        if not by_iteration:
            return usage

        iterations = sorted(by_iteration)
        cutoff = iterations[-1] - self.keep_recent_iterations
        old_iterations = [i for i in iterations if i <= cutoff]
        if not old_iterations:
            return usage

        logger.info(
            f"Summarizing {len(old_iterations)} iteration(s) up to {cutoff} "
            f"(thread {thread.id})"
        )

        summaries: list[SummaryEvent] = []
        for iteration in old_iterations:
            events = by_iteration[iteration]
            if len(events) == 1 and isinstance(events[0], SummaryEvent):
                summaries.append(events[0])
                continue

            events_text = "\n".join(_serialize_event(e) for e in events)
            try:
                response = await provider.invoke(
                    [ChatMessage(role="user", content=SUMMARY_PROMPT + events_text)],
                    [],
                )
                usage = usage + response.usage
                summary_text = response.text
            except Exception as e:
                logger.warning(f"Summarization of iteration {iteration} failed: {e}")
                summary_text = (
                    f"Iteration {iteration}: {len(events)} events (summarization failed)"
                )

            summaries.append(SummaryEvent(
                summarized_iterations=[iteration],
                summary=summary_text,
                iteration=iteration,
            ))

        recent = [e for e in thread.events if e.iteration > cutoff]
        thread.replace_events(summaries + recent)
        return usage

    def build_context_injection(self, thread: Thread) -> str:
        summaries = [e for e in thread.events if isinstance(e, SummaryEvent)]
        if not summaries:
            return ""

        parts = ["## Previous Iteration Summaries\n"]
        for s in summaries:
            iters = ", ".join(str(i) for i in s.summarized_iterations)
            parts.append(f"### Iteration(s) {iters}\n{s.summary}\n")
        return "\n".join(parts)
