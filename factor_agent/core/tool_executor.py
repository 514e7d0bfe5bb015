"""
Tool Executor — runs one model response's batch of tool calls against the
merged registry and records them on the thread.

Every ToolCallEvent gets exactly one ToolResultEvent, including the
synthetic ones for calls that are never executed (human-input requests,
interrupt_on tools, unknown tools, failing tools).

Two policies:
  - sequential (default): call, result, call, result ... in request order
  - parallel: all ToolCallEvents up front, ordinary calls fanned out with
    asyncio.gather, HITL/interrupt calls handled afterwards one at a time,
    then every ToolResultEvent appended in request order
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional

from .models import (
    HumanInputRequestedEvent, Thread, ToolCall, ToolCallEvent, ToolResultEvent,
)
from .tool_registry import ToolExecution, ToolRegistry
from ..tools.request_human_input import TOOL_NAME_REQUEST_HUMAN_INPUT, parse_request_args
from ..tools.todo import TOOL_NAME_WRITE_TODOS

logger = logging.getLogger(__name__)

WAITING_FOR_HUMAN_RESULT = "[Waiting for human input]"


def interrupted_result(tool_name: str) -> str:
    return f'[Tool "{tool_name}" not executed: interrupted for human approval]'


@dataclass
class ToolBatchOutcome:
    """What a batch revealed. `results` are in request order."""
    results: list[ToolResultEvent] = field(default_factory=list)
    human_input_request: Optional[HumanInputRequestedEvent] = None
    interrupted_tools: list[str] = field(default_factory=list)

    @property
    def should_pause(self) -> bool:
        return self.human_input_request is not None or bool(self.interrupted_tools)


class ToolExecutor:

    def __init__(
        self,
        registry: ToolRegistry,
        interrupt_on: Optional[Iterable[str]] = None,
        parallel: bool = False,
    ):
        self.registry = registry
        self.interrupt_on = frozenset(interrupt_on or ())
        self.parallel = parallel

    @staticmethod
    def resolve_call_id(call: ToolCall, step: int) -> str:
        return call.id or f"call_{step}_{call.name}"

    def _is_deferred(self, call: ToolCall) -> bool:
        return call.name == TOOL_NAME_REQUEST_HUMAN_INPUT or call.name in self.interrupt_on

    async def execute(
        self,
        calls: list[ToolCall],
        thread: Thread,
        iteration: int,
        step: int = 0,
    ) -> ToolBatchOutcome:
        if self.parallel:
            return await self._execute_parallel(calls, thread, iteration, step)
        return await self._execute_sequential(calls, thread, iteration, step)

    # ── Sequential policy ───────────────────────────────────────

    async def _execute_sequential(
        self, calls: list[ToolCall], thread: Thread, iteration: int, step: int,
    ) -> ToolBatchOutcome:
        outcome = ToolBatchOutcome()
        for call in calls:
            call_id = self.resolve_call_id(call, step)
            thread.append(ToolCallEvent(
                tool_name=call.name, tool_call_id=call_id,
                args=dict(call.args or {}), iteration=iteration,
            ))
            if self._is_deferred(call):
                result = self._deferred_result(call, call_id, iteration, outcome)
            else:
                execution = await self.registry.execute_tool(call)
                result = self._record_execution(call, call_id, execution, thread, iteration)
            thread.append(result)
            outcome.results.append(result)

        self._append_human_request(thread, outcome)
        return outcome

    # ── Parallel policy ─────────────────────────────────────────

    async def _execute_parallel(
        self, calls: list[ToolCall], thread: Thread, iteration: int, step: int,
    ) -> ToolBatchOutcome:
        outcome = ToolBatchOutcome()
        group = f"parallel_{iteration}_{step}"
        call_ids = [self.resolve_call_id(call, step) for call in calls]

        for call, call_id in zip(calls, call_ids):
            thread.append(ToolCallEvent(
                tool_name=call.name, tool_call_id=call_id,
                args=dict(call.args or {}), iteration=iteration,
            ))

        concurrent = [i for i, call in enumerate(calls) if not self._is_deferred(call)]
        deferred = [i for i, call in enumerate(calls) if self._is_deferred(call)]
        slots: list[Optional[ToolResultEvent]] = [None] * len(calls)

        if concurrent:
            logger.debug(f"Executing {len(concurrent)} tool call(s) concurrently ({group})")
            executions = await asyncio.gather(
                *(self._safe_execute(calls[i]) for i in concurrent)
            )
            for i, execution in zip(concurrent, executions):
                slots[i] = self._record_execution(
                    calls[i], call_ids[i], execution, thread, iteration, group,
                )

        for i in deferred:
            slots[i] = self._deferred_result(calls[i], call_ids[i], iteration, outcome, group)

        for result in slots:
            thread.append(result)
            outcome.results.append(result)

        self._append_human_request(thread, outcome)
        return outcome

    async def _safe_execute(self, call: ToolCall) -> ToolExecution:
        # execute_tool already converts tool errors; this also covers registry bugs
        try:
            return await self.registry.execute_tool(call)
        except Exception as e:
            logger.warning(f"Parallel tool call '{call.name}' failed: {e}")
            return ToolExecution(
                output=f'Error executing tool "{call.name}": {type(e).__name__}: {e}',
                duration_ms=0.0,
                success=False,
                error=str(e),
            )

    # ── Shared helpers ──────────────────────────────────────────

    def _deferred_result(
        self,
        call: ToolCall,
        call_id: str,
        iteration: int,
        outcome: ToolBatchOutcome,
        group: Optional[str] = None,
    ) -> ToolResultEvent:
        if call.name == TOOL_NAME_REQUEST_HUMAN_INPUT:
            if outcome.human_input_request is None:
                outcome.human_input_request = HumanInputRequestedEvent(
                    iteration=iteration, **parse_request_args(call.args or {}),
                )
            logger.info(f"Model requested human input (call {call_id})")
            text = WAITING_FOR_HUMAN_RESULT
        else:
            outcome.interrupted_tools.append(call.name)
            logger.info(f"Tool '{call.name}' interrupted for approval (call {call_id})")
            text = interrupted_result(call.name)
        return ToolResultEvent(
            tool_call_id=call_id, result=text, parallel_group=group, iteration=iteration,
        )

    def _record_execution(
        self,
        call: ToolCall,
        call_id: str,
        execution: ToolExecution,
        thread: Thread,
        iteration: int,
        group: Optional[str] = None,
    ) -> ToolResultEvent:
        if call.name == TOOL_NAME_WRITE_TODOS and execution.success:
            self._observe_todos(execution.output, thread)
        return ToolResultEvent(
            tool_call_id=call_id,
            result=execution.output,
            duration_ms=execution.duration_ms,
            parallel_group=group,
            iteration=iteration,
        )

    @staticmethod
    def _observe_todos(output: str, thread: Thread) -> None:
        try:
            parsed = json.loads(output)
        except (TypeError, ValueError) as e:
            logger.warning(f"Failed to parse {TOOL_NAME_WRITE_TODOS} result: {e}")
            return
        if isinstance(parsed, dict) and parsed.get("todos") is not None:
            thread.metadata["todos"] = parsed["todos"]

    @staticmethod
    def _append_human_request(thread: Thread, outcome: ToolBatchOutcome) -> None:
        if outcome.human_input_request is not None:
            thread.append(outcome.human_input_request)
