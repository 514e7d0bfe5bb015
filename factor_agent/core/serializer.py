"""
Thread → model input.

Two context modes:
  - "standard": one ChatMessage per event, tool calls and results paired
    by id so the transcript round-trips for any tool-calling API
  - "xml": the whole thread as a single <thread> user message
"""

from __future__ import annotations

from typing import Literal

from .models import (
    ChatMessage, CompletionEvent, ErrorEvent, HumanInputReceivedEvent,
    HumanInputRequestedEvent, MessageEvent, SummaryEvent, Thread, ToolCall,
    ToolCallEvent, ToolResultEvent,
)
from .xml_serializer import serialize_thread_to_xml

ContextMode = Literal["standard", "xml"]


def build_system_prompt(instructions: str, context_injection: str) -> str:
    return "\n\n".join(part for part in (context_injection, instructions) if part)


def thread_to_messages(thread: Thread) -> list[ChatMessage]:
    """Convert thread events into a role-by-role transcript."""
    messages: list[ChatMessage] = []
    for event in thread.events:
        if isinstance(event, ToolCallEvent):
            call = ToolCall(name=event.tool_name, id=event.tool_call_id, args=dict(event.args))
            last = messages[-1] if messages else None
            # consecutive calls from one model turn share an assistant message
            if last is not None and last.role == "assistant" and last.tool_calls and not last.content:
                last.tool_calls.append(call)
            else:
                messages.append(ChatMessage(role="assistant", content="", tool_calls=[call]))
        elif isinstance(event, ToolResultEvent):
            messages.append(ChatMessage(
                role="tool", content=str(event.result), tool_call_id=event.tool_call_id,
            ))
        elif isinstance(event, MessageEvent):
            if event.role == "system":
                messages.append(ChatMessage(role="user", content=f"[System]: {event.content}"))
            else:
                messages.append(ChatMessage(role=event.role, content=event.content))
        elif isinstance(event, HumanInputReceivedEvent):
            messages.append(ChatMessage(role="user", content=f"[Human Response]: {event.response}"))
        elif isinstance(event, ErrorEvent):
            kind = "recoverable" if event.recoverable else "non-recoverable"
            messages.append(ChatMessage(role="user", content=f"[Error ({kind})]: {event.error}"))
        elif isinstance(event, (SummaryEvent, CompletionEvent, HumanInputRequestedEvent)):
            # summaries reach the model through the system prompt
            continue
        else:
            raise TypeError(f"Unsupported event: {type(event).__name__}")
    return messages


def build_messages(
    thread: Thread,
    instructions: str = "",
    context_injection: str = "",
    mode: ContextMode = "standard",
) -> list[ChatMessage]:
    """Model-ready input: system prompt plus the serialized thread."""
    messages: list[ChatMessage] = []
    system = build_system_prompt(instructions, context_injection)
    if system:
        messages.append(ChatMessage(role="system", content=system))

    if mode == "xml":
        messages.append(ChatMessage(role="user", content=serialize_thread_to_xml(thread.events)))
    elif mode == "standard":
        messages.extend(thread_to_messages(thread))
    else:
        raise ValueError(f"Unknown context mode: {mode!r}")
    return messages
