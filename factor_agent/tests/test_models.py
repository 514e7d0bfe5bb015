"""
Tests — data model: events, Thread persistence, TokenUsage arithmetic,
PendingState round-trip.
"""

from __future__ import annotations

import json
import unittest

from factor_agent.core.models import (
    CompletionEvent, ErrorEvent, HumanInputReceivedEvent,
    HumanInputRequestedEvent, MessageEvent, PendingState, SummaryEvent,
    Thread, TokenUsage, ToolCall, ToolCallEvent, ToolResultEvent, add_usage,
    create_thread, event_from_dict, event_to_dict,
)


def _full_thread() -> Thread:
    thread = create_thread()
    thread.append(MessageEvent(role="user", content="hi", iteration=0))
    thread.append(ToolCallEvent(tool_name="search", tool_call_id="c1", args={"q": "x"}, iteration=1))
    thread.append(ToolResultEvent(tool_call_id="c1", result="found", duration_ms=1.5, iteration=1))
    thread.append(ErrorEvent(error="RuntimeError: boom", recoverable=True, iteration=2))
    thread.append(HumanInputRequestedEvent(
        question="Which?", urgency="high", format="multiple_choice",
        choices=["a", "b"], iteration=3,
    ))
    thread.append(HumanInputReceivedEvent(response="a", iteration=3))
    thread.append(SummaryEvent(summarized_iterations=[0], summary="started", iteration=0))
    thread.append(CompletionEvent(result="done", verified=True, iteration=4))
    thread.metadata["todos"] = [{"id": "1", "text": "t", "status": "done"}]
    return thread


# ═══════════════════════════════════════════════════════════════════
#  Thread
# ═══════════════════════════════════════════════════════════════════


class TestThread(unittest.TestCase):

    def test_create_thread_generates_unique_ids(self):
        a, b = create_thread(), create_thread()
        self.assertTrue(a.id.startswith("thread_"))
        self.assertNotEqual(a.id, b.id)
        self.assertEqual(a.events, [])
        self.assertEqual(a.metadata, {})

    def test_append_bumps_updated_at(self):
        thread = create_thread()
        thread.updated_at = 0.0
        thread.append(MessageEvent(role="user", content="x"))
        self.assertGreater(thread.updated_at, 0.0)

    def test_max_iteration(self):
        thread = create_thread()
        self.assertEqual(thread.max_iteration(), 0)
        thread.append(MessageEvent(role="user", content="x", iteration=0))
        thread.append(MessageEvent(role="assistant", content="y", iteration=4))
        thread.append(MessageEvent(role="assistant", content="z", iteration=2))
        self.assertEqual(thread.max_iteration(), 4)

    def test_events_for_iteration(self):
        thread = _full_thread()
        self.assertEqual(len(thread.events_for_iteration(1)), 2)
        self.assertEqual(thread.events_for_iteration(99), [])

    def test_round_trip_preserves_everything(self):
        thread = _full_thread()
        restored = Thread.from_dict(json.loads(json.dumps(thread.to_dict())))
        self.assertEqual(restored.id, thread.id)
        self.assertEqual(restored.events, thread.events)
        self.assertEqual(restored.metadata, thread.metadata)
        self.assertEqual(restored.created_at, thread.created_at)
        self.assertEqual(restored.updated_at, thread.updated_at)

    def test_round_trip_keeps_event_kinds(self):
        restored = Thread.from_dict(_full_thread().to_dict())
        kinds = [type(e).__name__ for e in restored.events]
        self.assertEqual(kinds, [
            "MessageEvent", "ToolCallEvent", "ToolResultEvent", "ErrorEvent",
            "HumanInputRequestedEvent", "HumanInputReceivedEvent",
            "SummaryEvent", "CompletionEvent",
        ])


# ═══════════════════════════════════════════════════════════════════
#  Event codec
# ═══════════════════════════════════════════════════════════════════


class TestEventCodec(unittest.TestCase):

    def test_event_dict_carries_type_tag(self):
        data = event_to_dict(ToolResultEvent(tool_call_id="c1", result="ok", iteration=2))
        self.assertEqual(data["type"], "tool_result")
        self.assertEqual(data["tool_call_id"], "c1")
        self.assertEqual(data["iteration"], 2)
        self.assertIsNone(data["parallel_group"])

    def test_unknown_type_raises(self):
        with self.assertRaises(ValueError):
            event_from_dict({"type": "bogus", "iteration": 0})

    def test_events_are_immutable(self):
        event = MessageEvent(role="user", content="x")
        with self.assertRaises(Exception):
            event.content = "y"  # type: ignore[misc]


# ═══════════════════════════════════════════════════════════════════
#  TokenUsage
# ═══════════════════════════════════════════════════════════════════


class TestTokenUsage(unittest.TestCase):

    def setUp(self):
        self.a = TokenUsage(input_tokens=10, output_tokens=5, total_tokens=15)
        self.b = TokenUsage(input_tokens=3, output_tokens=2, total_tokens=5, cache_read_tokens=7)
        self.c = TokenUsage(input_tokens=1, output_tokens=1, total_tokens=2, cache_write_tokens=4)

    def test_pointwise_sum(self):
        total = self.a + self.b
        self.assertEqual(total.input_tokens, 13)
        self.assertEqual(total.output_tokens, 7)
        self.assertEqual(total.total_tokens, 20)

    def test_cache_fields_stay_none_when_both_absent(self):
        total = add_usage(self.a, TokenUsage(input_tokens=1))
        self.assertIsNone(total.cache_read_tokens)
        self.assertIsNone(total.cache_write_tokens)

    def test_cache_field_present_on_one_side(self):
        total = self.a + self.b
        self.assertEqual(total.cache_read_tokens, 7)
        self.assertIsNone(total.cache_write_tokens)

    def test_commutative(self):
        self.assertEqual(self.a + self.b, self.b + self.a)
        self.assertEqual(self.b + self.c, self.c + self.b)

    def test_associative(self):
        self.assertEqual((self.a + self.b) + self.c, self.a + (self.b + self.c))

    def test_zero_is_identity(self):
        self.assertEqual(TokenUsage() + self.b, self.b)

    def test_to_dict_omits_absent_cache_fields(self):
        self.assertNotIn("cache_read_tokens", self.a.to_dict())
        self.assertEqual(self.b.to_dict()["cache_read_tokens"], 7)


# ═══════════════════════════════════════════════════════════════════
#  Misc wire types
# ═══════════════════════════════════════════════════════════════════


class TestWireTypes(unittest.TestCase):

    def test_tool_call_generate_id(self):
        self.assertTrue(ToolCall.generate_id().startswith("call_"))
        self.assertNotEqual(ToolCall.generate_id(), ToolCall.generate_id())

    def test_pending_state_round_trip(self):
        state = PendingState(thread=_full_thread(), iteration=3, prompt="do it")
        restored = PendingState.from_dict(json.loads(json.dumps(state.to_dict())))
        self.assertEqual(restored.iteration, 3)
        self.assertEqual(restored.prompt, "do it")
        self.assertEqual(restored.thread.events, state.thread.events)


if __name__ == "__main__":
    unittest.main()
