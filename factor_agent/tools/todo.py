"""
Todo Tools — planning list with pending/in_progress/done states.

WriteTodosTool and ReadTodosTool share one TodoStore, so whatever the
model writes is what it reads back. Each todo middleware instance owns its
own store; nothing is global.
"""

from __future__ import annotations
import logging

from .base import BaseTool

logger = logging.getLogger(__name__)

TOOL_NAME_WRITE_TODOS = "write_todos"
TOOL_NAME_READ_TODOS = "read_todos"

TODO_STATUSES = ("pending", "in_progress", "done")


class TodoValidationError(ValueError):
    """Raised when a todo item is malformed."""


class TodoStore:
    """In-memory todo list."""

    def __init__(self):
        self._todos: list[dict] = []

    @property
    def todos(self) -> list[dict]:
        """Return current todo list (read-only copy)."""
        return [t.copy() for t in self._todos]

    def replace(self, todos: list[dict]) -> list[dict]:
        validated = []
        for i, todo in enumerate(todos):
            if not isinstance(todo, dict):
                raise TodoValidationError(f"Todo item {i} must be an object.")
            if "text" not in todo or "status" not in todo:
                raise TodoValidationError(
                    f"Todo item {i} missing required 'text' or 'status' field."
                )
            if todo["status"] not in TODO_STATUSES:
                raise TodoValidationError(
                    f"Todo item {i} has invalid status '{todo['status']}'. "
                    "Must be: pending, in_progress, or done."
                )
            validated.append({
                "id": str(todo.get("id") or i + 1),
                "text": todo["text"],
                "status": todo["status"],
            })
        self._todos = validated
        logger.debug(f"Todo list updated: {len(validated)} items")
        return self.todos

    def summary(self) -> str:
        done = sum(1 for t in self._todos if t["status"] == "done")
        active = sum(1 for t in self._todos if t["status"] == "in_progress")
        return f"{done}/{len(self._todos)} done, {active} in progress"


class WriteTodosTool(BaseTool):
    name = TOOL_NAME_WRITE_TODOS
    description = "Create or update the todo list for planning and tracking progress"
    input_schema = {
        "type": "object",
        "properties": {
            "todos": {
                "type": "array",
                "description": "The complete updated todo list",
                "items": {
                    "type": "object",
                    "properties": {
                        "id": {"type": "string"},
                        "text": {
                            "type": "string",
                            "description": "What needs to be done",
                        },
                        "status": {
                            "type": "string",
                            "enum": list(TODO_STATUSES),
                        },
                    },
                    "required": ["id", "text", "status"],
                },
            },
        },
        "required": ["todos"],
    }

    def __init__(self, store: TodoStore):
        self._store = store

    async def execute(self, todos: list | None = None, **kwargs) -> str:
        try:
            updated = self._store.replace(todos or [])
        except TodoValidationError as e:
            return self._json({"success": False, "error": str(e)})
        return self._json({"success": True, "todos": updated})


class ReadTodosTool(BaseTool):
    name = TOOL_NAME_READ_TODOS
    description = "Read the current todo list"
    input_schema = {"type": "object", "properties": {}}

    def __init__(self, store: TodoStore):
        self._store = store

    async def execute(self, **kwargs) -> str:
        return self._json({"todos": self._store.todos})
