"""
Tests — token estimation, summarization trigger, destructive compaction
and the summary block injected into the system prompt.
"""

from __future__ import annotations

import unittest

from factor_agent.core.context_manager import (
    ContextManagementConfig, ContextManager, estimate_tokens,
)
from factor_agent.core.models import (
    MessageEvent, SummaryEvent, TokenUsage, ToolCallEvent, ToolResultEvent,
    create_thread,
)
from factor_agent.tests.e2e_helpers import MockLLMProvider, run_async


def _thread_with_iterations(n: int):
    """Iterations 0..n-1, three events each."""
    thread = create_thread()
    for i in range(n):
        thread.append(MessageEvent(role="user", content=f"step {i}", iteration=i))
        thread.append(ToolCallEvent(tool_name="t", tool_call_id=f"c{i}", args={}, iteration=i))
        thread.append(ToolResultEvent(tool_call_id=f"c{i}", result="ok", iteration=i))
    return thread


class TestEstimation(unittest.TestCase):

    def test_estimate_tokens(self):
        self.assertEqual(estimate_tokens(""), 0)
        self.assertEqual(estimate_tokens("abc"), 1)
        self.assertEqual(estimate_tokens("a" * 7), 2)
        self.assertEqual(estimate_tokens("a" * 8), 3)

    def test_custom_estimator_drives_trigger(self):
        thread = _thread_with_iterations(2)
        manager = ContextManager(ContextManagementConfig(max_context_tokens=5, token_estimator=lambda s: 1))
        self.assertEqual(manager.estimate_thread_tokens(thread), 6)
        self.assertTrue(manager.needs_summarization(thread))

    def test_needs_summarization_is_strict(self):
        thread = _thread_with_iterations(2)
        manager = ContextManager(ContextManagementConfig(max_context_tokens=6, token_estimator=lambda s: 1))
        self.assertFalse(manager.needs_summarization(thread))


class TestSummarize(unittest.TestCase):

    def test_compacts_old_iterations(self):
        provider = MockLLMProvider()
        provider.enqueue_text("summary 0", usage=TokenUsage(input_tokens=10, output_tokens=2, total_tokens=12))
        provider.enqueue_text("summary 1", usage=TokenUsage(input_tokens=10, output_tokens=2, total_tokens=12))
        thread = _thread_with_iterations(5)
        manager = ContextManager(ContextManagementConfig(keep_recent_iterations=3))

        usage = run_async(manager.summarize(thread, provider))

        # cutoff = 4 - 3 = 1 → iterations 0 and 1 summarized
        summaries = [e for e in thread.events if isinstance(e, SummaryEvent)]
        self.assertEqual([s.summarized_iterations for s in summaries], [[0], [1]])
        self.assertEqual([s.summary for s in summaries], ["summary 0", "summary 1"])
        self.assertEqual(thread.events[:2], summaries)
        remaining = thread.events[2:]
        self.assertEqual({e.iteration for e in remaining}, {2, 3, 4})
        self.assertEqual(len(remaining), 9)
        self.assertEqual(usage.total_tokens, 24)
        self.assertEqual(provider.call_count, 2)
        # summarizer is called without tools
        self.assertEqual(provider.call_log[0]["tools"], [])

    def test_failed_summary_uses_placeholder(self):
        provider = MockLLMProvider()
        provider.enqueue_error("model down")
        thread = _thread_with_iterations(4)
        manager = ContextManager(ContextManagementConfig(keep_recent_iterations=3))

        usage = run_async(manager.summarize(thread, provider))

        self.assertIsInstance(thread.events[0], SummaryEvent)
        self.assertEqual(thread.events[0].summary, "Iteration 0: 3 events (summarization failed)")
        self.assertEqual(usage, TokenUsage())

    def test_existing_summary_is_kept_verbatim(self):
        provider = MockLLMProvider()
        provider.enqueue_text("new summary")
        thread = _thread_with_iterations(5)
        old = SummaryEvent(summarized_iterations=[0], summary="old summary", iteration=0)
        thread.replace_events([old] + [e for e in thread.events if e.iteration > 0])

        run_async(ContextManager(ContextManagementConfig(keep_recent_iterations=3)).summarize(thread, provider))

        self.assertIs(thread.events[0], old)
        self.assertEqual(thread.events[1].summary, "new summary")
        self.assertEqual(provider.call_count, 1)

    def test_nothing_to_summarize(self):
        provider = MockLLMProvider()
        thread = _thread_with_iterations(3)
        before = list(thread.events)
        run_async(ContextManager(ContextManagementConfig(keep_recent_iterations=3)).summarize(thread, provider))
        self.assertEqual(thread.events, before)
        self.assertEqual(provider.call_count, 0)


class TestContextInjection(unittest.TestCase):

    def test_empty_without_summaries(self):
        self.assertEqual(ContextManager().build_context_injection(_thread_with_iterations(2)), "")

    def test_renders_summaries(self):
        thread = create_thread()
        thread.append(SummaryEvent(summarized_iterations=[0, 1], summary="did things", iteration=1))
        text = ContextManager().build_context_injection(thread)
        self.assertTrue(text.startswith("## Previous Iteration Summaries"))
        self.assertIn("### Iteration(s) 0, 1\ndid things", text)


if __name__ == "__main__":
    unittest.main()
