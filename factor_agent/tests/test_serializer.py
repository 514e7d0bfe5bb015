"""
Tests — thread → model input, standard transcript and XML document modes.
"""

from __future__ import annotations

import unittest

from factor_agent.core.models import (
    CompletionEvent, ErrorEvent, HumanInputReceivedEvent,
    HumanInputRequestedEvent, MessageEvent, SummaryEvent, ToolCallEvent,
    ToolResultEvent, create_thread,
)
from factor_agent.core.serializer import (
    build_messages, build_system_prompt, thread_to_messages,
)
from factor_agent.core.xml_serializer import escape_xml, serialize_thread_to_xml


def _thread():
    thread = create_thread()
    thread.append(MessageEvent(role="user", content="Find <x> & y", iteration=0))
    thread.append(ToolCallEvent(tool_name="search", tool_call_id="c1", args={"q": "x"}, iteration=1))
    thread.append(ToolCallEvent(tool_name="fetch", tool_call_id="c2", args={}, iteration=1))
    thread.append(ToolResultEvent(tool_call_id="c1", result="r1", iteration=1))
    thread.append(ToolResultEvent(tool_call_id="c2", result="r2", iteration=1))
    thread.append(MessageEvent(role="assistant", content="Found it", iteration=1))
    thread.append(ErrorEvent(error="ValueError: bad", recoverable=False, iteration=2))
    thread.append(MessageEvent(role="system", content="Try again", iteration=2))
    thread.append(HumanInputRequestedEvent(question="Sure?", iteration=2))
    thread.append(HumanInputReceivedEvent(response="yes", iteration=2))
    thread.append(SummaryEvent(summarized_iterations=[0], summary="s", iteration=0))
    thread.append(CompletionEvent(result="Found it", verified=False, iteration=3))
    return thread


class TestStandardMode(unittest.TestCase):

    def test_transcript_shape(self):
        messages = thread_to_messages(_thread())
        self.assertEqual(
            [m.role for m in messages],
            ["user", "assistant", "tool", "tool", "assistant", "user", "user", "user"],
        )

    def test_consecutive_tool_calls_share_one_assistant_message(self):
        messages = thread_to_messages(_thread())
        assistant = messages[1]
        self.assertEqual([c.id for c in assistant.tool_calls], ["c1", "c2"])
        self.assertEqual(assistant.tool_calls[0].args, {"q": "x"})
        self.assertEqual([m.tool_call_id for m in messages[2:4]], ["c1", "c2"])

    def test_role_prefixes(self):
        contents = [m.content for m in thread_to_messages(_thread())]
        self.assertIn("[Error (non-recoverable)]: ValueError: bad", contents)
        self.assertIn("[System]: Try again", contents)
        self.assertIn("[Human Response]: yes", contents)

    def test_system_prompt_puts_summaries_first(self):
        self.assertEqual(build_system_prompt("Be brief.", "## Summaries"), "## Summaries\n\nBe brief.")
        self.assertEqual(build_system_prompt("Be brief.", ""), "Be brief.")
        self.assertEqual(build_system_prompt("", ""), "")

    def test_build_messages_leading_system(self):
        messages = build_messages(_thread(), instructions="Be brief.")
        self.assertEqual(messages[0].role, "system")
        self.assertEqual(messages[0].content, "Be brief.")

    def test_no_system_message_without_prompt(self):
        messages = build_messages(_thread())
        self.assertEqual(messages[0].role, "user")

    def test_unknown_mode(self):
        with self.assertRaises(ValueError):
            build_messages(_thread(), mode="yaml")  # type: ignore[arg-type]


class TestXmlMode(unittest.TestCase):

    def test_escape_xml(self):
        self.assertEqual(escape_xml("<a href=\"x\">'&'</a>"), "&lt;a href=&quot;x&quot;&gt;&apos;&amp;&apos;&lt;/a&gt;")

    def test_single_user_message(self):
        messages = build_messages(_thread(), instructions="sys", mode="xml")
        self.assertEqual([m.role for m in messages], ["system", "user"])
        self.assertTrue(messages[1].content.startswith("<thread>"))
        self.assertTrue(messages[1].content.endswith("</thread>"))

    def test_event_rendering(self):
        xml = serialize_thread_to_xml(_thread().events)
        self.assertIn('<event type="human" id="0" iteration="0">Find &lt;x&gt; &amp; y</event>', xml)
        self.assertIn('type="tool_input" id="1" name="search"', xml)
        self.assertIn('type="tool_output" id="3" name="search" status="success"', xml)
        self.assertIn('recoverable="false"', xml)
        self.assertIn('summarizedIterations="0"', xml)
        self.assertIn('<event type="ai" id="5" iteration="1">Found it</event>', xml)

    def test_assistant_prefill(self):
        xml = serialize_thread_to_xml([], assistant_prefill="<reply>")
        self.assertEqual(xml, "<thread>\n</thread>\n<reply>")


if __name__ == "__main__":
    unittest.main()
