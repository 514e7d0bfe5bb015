"""
RequestHumanInput Tool — lets the model ask a human a question mid-task.

The agent loop never executes this tool: a call to it suspends the run and
returns a PendingResult. The schema is what the model sees; execute() only
echoes the request so the tool is still usable outside the loop.
"""

from __future__ import annotations
from typing import Optional

from .base import BaseTool

TOOL_NAME_REQUEST_HUMAN_INPUT = "request_human_input"

URGENCY_LEVELS = ("low", "medium", "high")
RESPONSE_FORMATS = ("free_text", "yes_no", "multiple_choice")


class RequestHumanInputTool(BaseTool):
    name = TOOL_NAME_REQUEST_HUMAN_INPUT
    description = (
        "Request input or approval from a human. Use when you need "
        "clarification, confirmation, or a decision."
    )
    input_schema = {
        "type": "object",
        "properties": {
            "question": {
                "type": "string",
                "description": "The question to ask the human",
            },
            "context": {
                "type": "string",
                "description": "Background context for the question",
            },
            "urgency": {
                "type": "string",
                "enum": list(URGENCY_LEVELS),
                "default": "medium",
                "description": "How urgent is this request",
            },
            "format": {
                "type": "string",
                "enum": list(RESPONSE_FORMATS),
                "default": "free_text",
                "description": "Expected response format",
            },
            "choices": {
                "type": "array",
                "items": {"type": "string"},
                "description": "Options for multiple_choice format",
            },
        },
        "required": ["question"],
    }

    async def execute(self, question: str = "", context: Optional[str] = None,
                      urgency: str = "medium", format: str = "free_text",
                      choices: Optional[list] = None, **kwargs) -> str:
        return self._json({
            "requested": True,
            "question": question,
            "context": context,
            "urgency": urgency,
            "format": format,
            "choices": choices,
        })


def parse_request_args(args: dict) -> dict:
    """
    Normalize raw model arguments into HumanInputRequestedEvent fields.

    Unknown urgency/format values are dropped rather than rejected.
    """
    urgency = args.get("urgency")
    fmt = args.get("format")
    choices = args.get("choices")
    return {
        "question": str(args.get("question") or ""),
        "context": args.get("context"),
        "urgency": urgency if urgency in URGENCY_LEVELS else None,
        "format": fmt if fmt in RESPONSE_FORMATS else None,
        "choices": [str(c) for c in choices] if isinstance(choices, list) else None,
    }
