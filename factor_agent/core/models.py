"""
Universal data models for the agent engine.

Thread + event log, token usage accounting, the model-client wire types
and the result shapes returned by the agent loop. Providers convert the
wire types to/from their native formats.
"""

from __future__ import annotations
import time
import uuid
from dataclasses import dataclass, field, fields
from typing import TYPE_CHECKING, Any, ClassVar, Literal, Optional, Union

if TYPE_CHECKING:
    from .agent import Agent


# ── Events ──────────────────────────────────────────────────────
#
# Each event kind is its own frozen dataclass; Event is the closed union.
# New kinds are added as new variants (and registered in EVENT_TYPES).


@dataclass(frozen=True)
class MessageEvent:
    """A user, assistant or system message."""
    type: ClassVar[str] = "message"
    role: Literal["user", "assistant", "system"]
    content: str
    iteration: int = 0
    timestamp: float = field(default_factory=time.time)


@dataclass(frozen=True)
class ToolCallEvent:
    """A tool invocation requested by the model."""
    type: ClassVar[str] = "tool_call"
    tool_name: str
    tool_call_id: str
    args: dict = field(default_factory=dict)
    iteration: int = 0
    timestamp: float = field(default_factory=time.time)


@dataclass(frozen=True)
class ToolResultEvent:
    """Result (real or synthetic) paired with a ToolCallEvent."""
    type: ClassVar[str] = "tool_result"
    tool_call_id: str
    result: str
    duration_ms: Optional[float] = None
    parallel_group: Optional[str] = None
    iteration: int = 0
    timestamp: float = field(default_factory=time.time)


@dataclass(frozen=True)
class ErrorEvent:
    type: ClassVar[str] = "error"
    error: str
    recoverable: bool
    tool_call_id: Optional[str] = None
    iteration: int = 0
    timestamp: float = field(default_factory=time.time)


@dataclass(frozen=True)
class HumanInputRequestedEvent:
    type: ClassVar[str] = "human_input_requested"
    question: str
    context: Optional[str] = None
    urgency: Optional[Literal["low", "medium", "high"]] = None
    format: Optional[Literal["free_text", "yes_no", "multiple_choice"]] = None
    choices: Optional[list[str]] = None
    iteration: int = 0
    timestamp: float = field(default_factory=time.time)


@dataclass(frozen=True)
class HumanInputReceivedEvent:
    type: ClassVar[str] = "human_input_received"
    response: str
    iteration: int = 0
    timestamp: float = field(default_factory=time.time)


@dataclass(frozen=True)
class CompletionEvent:
    type: ClassVar[str] = "completion"
    result: str
    verified: bool
    iteration: int = 0
    timestamp: float = field(default_factory=time.time)


@dataclass(frozen=True)
class SummaryEvent:
    """Compacted replacement for the raw events of older iterations."""
    type: ClassVar[str] = "summary"
    summarized_iterations: list[int]
    summary: str
    iteration: int = 0
    timestamp: float = field(default_factory=time.time)


Event = Union[
    MessageEvent,
    ToolCallEvent,
    ToolResultEvent,
    ErrorEvent,
    HumanInputRequestedEvent,
    HumanInputReceivedEvent,
    CompletionEvent,
    SummaryEvent,
]

EVENT_TYPES: dict[str, type] = {
    cls.type: cls
    for cls in (
        MessageEvent, ToolCallEvent, ToolResultEvent, ErrorEvent,
        HumanInputRequestedEvent, HumanInputReceivedEvent,
        CompletionEvent, SummaryEvent,
    )
}


def event_to_dict(event: Event) -> dict:
    """Serialize an event to a JSON-compatible dict (with its type tag)."""
    data = {"type": event.type}
    for f in fields(event):
        value = getattr(event, f.name)
        if isinstance(value, list):
            value = list(value)
        elif isinstance(value, dict):
            value = dict(value)
        data[f.name] = value
    return data


def event_from_dict(data: dict) -> Event:
    """Rebuild an event from event_to_dict() output."""
    payload = dict(data)
    event_type = payload.pop("type", None)
    cls = EVENT_TYPES.get(event_type)
    if cls is None:
        raise ValueError(f"Unknown event type: {event_type!r}")
    return cls(**payload)


# ── Thread ──────────────────────────────────────────────────────


@dataclass
class Thread:
    """Append-only event log plus metadata for one agent run."""
    id: str
    events: list = field(default_factory=list)
    metadata: dict = field(default_factory=dict)
    created_at: float = field(default_factory=time.time)
    updated_at: float = field(default_factory=time.time)

    @staticmethod
    def generate_id() -> str:
        return f"thread_{uuid.uuid4().hex[:12]}"

    def append(self, event: Event) -> None:
        self.events.append(event)
        self.updated_at = time.time()

    def replace_events(self, events: list) -> None:
        """Swap the whole event list. Only context compaction does this."""
        self.events = list(events)
        self.updated_at = time.time()

    def max_iteration(self) -> int:
        return max((e.iteration for e in self.events), default=0)

    def events_for_iteration(self, iteration: int) -> list:
        return [e for e in self.events if e.iteration == iteration]

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "events": [event_to_dict(e) for e in self.events],
            "metadata": dict(self.metadata),
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Thread":
        return cls(
            id=data["id"],
            events=[event_from_dict(e) for e in data.get("events", [])],
            metadata=dict(data.get("metadata", {})),
            created_at=data.get("created_at", time.time()),
            updated_at=data.get("updated_at", time.time()),
        )


def create_thread() -> Thread:
    now = time.time()
    return Thread(id=Thread.generate_id(), created_at=now, updated_at=now)


# ── Token usage ─────────────────────────────────────────────────


def _add_optional(a: Optional[int], b: Optional[int]) -> Optional[int]:
    if a is None and b is None:
        return None
    return (a or 0) + (b or 0)


@dataclass(frozen=True)
class TokenUsage:
    """Token counts; cache fields stay None unless a provider reports them."""
    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0
    cache_read_tokens: Optional[int] = None
    cache_write_tokens: Optional[int] = None

    def __add__(self, other: "TokenUsage") -> "TokenUsage":
        return add_usage(self, other)

    def to_dict(self) -> dict:
        data = {
            "input_tokens": self.input_tokens,
            "output_tokens": self.output_tokens,
            "total_tokens": self.total_tokens,
        }
        if self.cache_read_tokens is not None:
            data["cache_read_tokens"] = self.cache_read_tokens
        if self.cache_write_tokens is not None:
            data["cache_write_tokens"] = self.cache_write_tokens
        return data


def add_usage(a: TokenUsage, b: TokenUsage) -> TokenUsage:
    """Pointwise sum of two usages."""
    return TokenUsage(
        input_tokens=a.input_tokens + b.input_tokens,
        output_tokens=a.output_tokens + b.output_tokens,
        total_tokens=a.total_tokens + b.total_tokens,
        cache_read_tokens=_add_optional(a.cache_read_tokens, b.cache_read_tokens),
        cache_write_tokens=_add_optional(a.cache_write_tokens, b.cache_write_tokens),
    )


# ── Model-client wire types ─────────────────────────────────────


@dataclass
class ToolSchema:
    """Universal tool definition for LLM consumption."""
    name: str
    description: str
    input_schema: dict  # JSON Schema format

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self.input_schema,
        }


@dataclass
class ToolCall:
    """A single tool invocation requested by the LLM."""
    name: str
    id: Optional[str] = None
    args: dict = field(default_factory=dict)

    @staticmethod
    def generate_id() -> str:
        return f"call_{uuid.uuid4().hex[:12]}"


@dataclass
class ChatMessage:
    """One message of model input."""
    role: Literal["system", "user", "assistant", "tool"]
    content: str
    tool_calls: list[ToolCall] = field(default_factory=list)
    tool_call_id: Optional[str] = None


@dataclass
class ModelResponse:
    """One model turn: final text and/or requested tool calls."""
    text: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)
    usage: TokenUsage = field(default_factory=TokenUsage)
    raw_response: Optional[Any] = None

    @property
    def has_tool_calls(self) -> bool:
        return len(self.tool_calls) > 0


# ── Loop results ────────────────────────────────────────────────


@dataclass
class AgentResult:
    response: str
    thread: Thread
    usage: TokenUsage
    iterations: int
    stop_reason: Literal["completed", "stop_condition", "max_errors"]
    stop_detail: Optional[str] = None


@dataclass
class PendingState:
    """Saved continuation point of a run paused for human input."""
    thread: Thread
    iteration: int
    prompt: str

    def to_dict(self) -> dict:
        return {
            "thread": self.thread.to_dict(),
            "iteration": self.iteration,
            "prompt": self.prompt,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "PendingState":
        return cls(
            thread=Thread.from_dict(data["thread"]),
            iteration=data["iteration"],
            prompt=data["prompt"],
        )


@dataclass
class PendingResult:
    """AgentResult-shaped value for a run suspended on human input."""
    response: str
    thread: Thread
    usage: TokenUsage
    iterations: int
    pending: PendingState
    agent: "Agent" = field(repr=False)
    stop_reason: Literal["human_input_needed"] = "human_input_needed"
    stop_detail: Optional[str] = None

    async def resume(self, human_response: str) -> Union[AgentResult, "PendingResult"]:
        """Record the human response and continue the run."""
        return await self.agent.resume(self.pending, human_response)


def is_pending_result(result: Union[AgentResult, PendingResult]) -> bool:
    return isinstance(result, PendingResult)
