"""
XML Thread Serializer — renders the whole event log as one <thread> block.

Used by the "xml" context mode, where the model sees the thread as a single
user message instead of a role-by-role transcript.
"""

from __future__ import annotations

import json
from typing import Optional

from .models import (
    CompletionEvent, ErrorEvent, HumanInputReceivedEvent, HumanInputRequestedEvent,
    MessageEvent, SummaryEvent, ToolCallEvent, ToolResultEvent,
)

_ROLE_TYPES = {"user": "human", "assistant": "ai", "system": "system"}


def escape_xml(text: str) -> str:
    """Escape XML special characters in text content and attribute values."""
    return (
        str(text)
        .replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
        .replace("'", "&apos;")
    )


def serialize_thread_to_xml(events: list, assistant_prefill: Optional[str] = None) -> str:
    """
    Convert events into a <thread> XML string.

    `assistant_prefill`, when given, is appended after the closing tag as a
    nudge for the model's reply.
    """
    tool_names = {
        e.tool_call_id: e.tool_name for e in events if isinstance(e, ToolCallEvent)
    }

    lines = ["<thread>"]
    for idx, event in enumerate(events):
        it = event.iteration
        if isinstance(event, MessageEvent):
            kind = _ROLE_TYPES.get(event.role, "system")
            lines.append(
                f'  <event type="{kind}" id="{idx}" iteration="{it}">'
                f"{escape_xml(event.content)}</event>"
            )
        elif isinstance(event, ToolCallEvent):
            lines.append(
                f'  <event type="tool_input" id="{idx}" name="{escape_xml(event.tool_name)}" '
                f'iteration="{it}">{escape_xml(json.dumps(event.args, default=str))}</event>'
            )
        elif isinstance(event, ToolResultEvent):
            name = tool_names.get(event.tool_call_id, "unknown")
            lines.append(
                f'  <event type="tool_output" id="{idx}" name="{escape_xml(name)}" '
                f'status="success" iteration="{it}">{escape_xml(event.result)}</event>'
            )
        elif isinstance(event, ErrorEvent):
            recoverable = "true" if event.recoverable else "false"
            lines.append(
                f'  <event type="error" id="{idx}" iteration="{it}" '
                f'recoverable="{recoverable}">{escape_xml(event.error)}</event>'
            )
        elif isinstance(event, HumanInputRequestedEvent):
            lines.append(
                f'  <event type="human_input_requested" id="{idx}" iteration="{it}">'
                f"{escape_xml(event.question)}</event>"
            )
        elif isinstance(event, HumanInputReceivedEvent):
            lines.append(
                f'  <event type="human_input_received" id="{idx}" iteration="{it}">'
                f"{escape_xml(event.response)}</event>"
            )
        elif isinstance(event, CompletionEvent):
            lines.append(
                f'  <event type="completion" id="{idx}" iteration="{it}">'
                f"{escape_xml(event.result)}</event>"
            )
        elif isinstance(event, SummaryEvent):
            iters = ",".join(str(i) for i in event.summarized_iterations)
            lines.append(
                f'  <event type="summary" id="{idx}" iteration="{it}" '
                f'summarizedIterations="{iters}">{escape_xml(event.summary)}</event>'
            )
        else:
            raise TypeError(f"Unsupported event: {type(event).__name__}")
    lines.append("</thread>")

    xml = "\n".join(lines)
    if assistant_prefill:
        xml = f"{xml}\n{assistant_prefill}"
    return xml
