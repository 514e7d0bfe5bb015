"""
Agent Loop — The core orchestrator.

Runs outer iterations over a Thread (the append-only event log). Each
iteration calls the model, executes the tool calls it asks for, records
everything on the thread, then decides: stop, pause for a human, verify
and complete, or go round again.

Flow per iteration:
  hooks → (compact context) → build input → model ⇄ tools sub-loop
  → record text → hooks → stop conditions → pause? → verify → done / next
"""

from __future__ import annotations
import inspect
import logging
from dataclasses import dataclass
from typing import (
    AsyncIterator, Awaitable, Callable, Iterable, Optional, Union,
)

from .context_manager import ContextManagementConfig, ContextManager
from .middleware import (
    AgentMiddleware, MiddlewareContext, call_hook, compose_middleware,
)
from .models import (
    AgentResult, ChatMessage, CompletionEvent, ErrorEvent,
    HumanInputReceivedEvent, HumanInputRequestedEvent, MessageEvent,
    ModelResponse, PendingResult, PendingState, Thread, TokenUsage, ToolCall,
    create_thread,
)
from .providers.base import BaseLLMProvider
from .serializer import ContextMode, build_messages
from .stop_conditions import (
    StopCondition, StopConditionContext, evaluate_stop_conditions,
)
from .tool_executor import ToolBatchOutcome, ToolExecutor
from .tool_registry import ConflictHandler, ToolRegistry

logger = logging.getLogger(__name__)

MAX_CONSECUTIVE_ERRORS = 3
MAX_ERROR_CHARS = 500


@dataclass
class VerifyContext:
    result: str
    iteration: int
    thread: Thread
    original_prompt: str


@dataclass
class VerifyResult:
    complete: bool
    reason: Optional[str] = None


Verifier = Callable[[VerifyContext], Union[VerifyResult, Awaitable[VerifyResult]]]
LoopResult = Union[AgentResult, PendingResult]


def compact_error(error: BaseException) -> str:
    """One-line `<ExcType>: <message>`, capped for the event log."""
    message = str(error).strip().replace("\n", " ")
    text = f"{type(error).__name__}: {message}" if message else type(error).__name__
    return text[:MAX_ERROR_CHARS]


class Agent:
    """
    Main agent loop.

    One Agent can serve many runs; all per-run state lives on the Thread
    and in the locals of a single _run_loop call. Middleware state (todo
    store etc.) is per middleware instance.
    """

    def __init__(
        self,
        provider: BaseLLMProvider,
        tools: Optional[Iterable] = None,
        instructions: str = "",
        stop_when: Union[StopCondition, list[StopCondition], None] = None,
        verify_completion: Optional[Verifier] = None,
        middleware: Optional[list[AgentMiddleware]] = None,
        interrupt_on: Optional[Iterable[str]] = None,
        context_management: Optional[ContextManagementConfig] = None,
        max_tool_calls_per_iteration: int = 20,
        context_mode: ContextMode = "standard",
        parallel_tool_calls: bool = False,
        on_iteration_start: Optional[Callable] = None,
        on_iteration_end: Optional[Callable] = None,
        model_id: Optional[str] = None,
        on_conflict: Optional[ConflictHandler] = None,
    ):
        if max_tool_calls_per_iteration < 1:
            raise ValueError("max_tool_calls_per_iteration must be >= 1")
        if context_mode not in ("standard", "xml"):
            raise ValueError(f"Unknown context mode: {context_mode!r}")

        self.provider = provider
        self.instructions = instructions
        self.model_id = model_id or getattr(provider, "model", "") or ""
        self.verify_completion = verify_completion
        self.interrupt_on = list(interrupt_on or [])
        self.max_tool_calls_per_iteration = max_tool_calls_per_iteration
        self.context_mode = context_mode
        self.parallel_tool_calls = parallel_tool_calls

        if stop_when is None:
            self.stop_conditions: list[StopCondition] = []
        elif callable(stop_when):
            self.stop_conditions = [stop_when]
        else:
            self.stop_conditions = list(stop_when)

        # Callbacks for UI updates
        self.on_iteration_start = on_iteration_start
        self.on_iteration_end = on_iteration_end

        middleware = list(middleware or [])
        # conflicts are reported once, by the registry merge below
        self.middleware = compose_middleware(middleware, on_conflict=lambda name, source: None)
        self.registry = ToolRegistry.from_sources(
            [("agent", list(tools or []))] + [(mw.name, mw.tools) for mw in middleware],
            on_conflict=on_conflict,
        )
        self.executor = ToolExecutor(
            self.registry,
            interrupt_on=self.interrupt_on,
            parallel=parallel_tool_calls,
        )
        self.context_manager = ContextManager(context_management)

    @property
    def tools(self) -> list:
        """Every tool the model can call: user tools plus middleware tools."""
        return [self.registry.get_tool(name) for name in self.registry.tool_names]

    # ── Entry points ────────────────────────────────────────────

    async def loop(self, prompt: str) -> LoopResult:
        """Run a fresh thread for `prompt` until completion, a stop, or a pause."""
        thread = create_thread()
        thread.append(MessageEvent(role="user", content=prompt, iteration=0))
        return await self._run_loop(thread, prompt, start_iteration=1)

    async def continue_loop(self, thread: Thread, prompt: str) -> LoopResult:
        """Append a follow-up prompt to an existing thread and keep going."""
        iteration = thread.max_iteration() + 1
        thread.append(MessageEvent(role="user", content=prompt, iteration=iteration))
        return await self._run_loop(thread, prompt, start_iteration=iteration)

    async def resume(self, pending: PendingState, human_response: str) -> LoopResult:
        """Record the human's answer for a paused run and continue it."""
        thread = pending.thread
        thread.append(HumanInputReceivedEvent(
            response=human_response, iteration=pending.iteration,
        ))
        logger.info(f"Resuming thread {thread.id} after iteration {pending.iteration}")
        return await self._run_loop(thread, pending.prompt, start_iteration=pending.iteration + 1)

    async def stream(self, prompt: str) -> AsyncIterator[str]:
        """Single model call on a fresh thread, yielding text chunks as they arrive."""
        thread = create_thread()
        thread.append(MessageEvent(role="user", content=prompt, iteration=0))
        messages = build_messages(thread, self.instructions, "", self.context_mode)
        async for chunk in self.provider.stream(messages, None):
            yield chunk

    # ── The loop ────────────────────────────────────────────────

    async def _run_loop(self, thread: Thread, prompt: str, start_iteration: int) -> LoopResult:
        total_usage = TokenUsage()
        consecutive_errors = 0
        last_response = ""
        iteration = start_iteration

        while True:
            logger.debug(f"Agent iteration {iteration} (thread {thread.id})")
            ctx = MiddlewareContext(thread=thread, iteration=iteration, settings=self)

            try:
                if self.on_iteration_start is not None:
                    await call_hook(self.on_iteration_start, iteration)
                await self.middleware.before_iteration(ctx)

                if self.context_manager.needs_summarization(thread):
                    summary_usage = await self.context_manager.summarize(thread, self.provider)
                    total_usage = total_usage + summary_usage

                response, iteration_usage, outcome = await self._run_tool_steps(thread, iteration)
                total_usage = total_usage + iteration_usage

                last_response = response.text
                if last_response:
                    thread.append(MessageEvent(
                        role="assistant", content=last_response, iteration=iteration,
                    ))

                await self.middleware.after_iteration(ctx, response)
                if self.on_iteration_end is not None:
                    await call_hook(self.on_iteration_end, iteration, response)

                stop = evaluate_stop_conditions(self.stop_conditions, StopConditionContext(
                    iteration=iteration, usage=total_usage, model=self.model_id, thread=thread,
                ))
            except Exception as e:
                consecutive_errors += 1
                if not await self._record_error(e, ctx, consecutive_errors):
                    return self._max_errors_result(thread, total_usage, iteration, last_response)
                iteration += 1
                continue

            consecutive_errors = 0

            if stop is not None:
                logger.info(f"Stop condition met at iteration {iteration}: {stop.reason}")
                return AgentResult(
                    response=last_response,
                    thread=thread,
                    usage=total_usage,
                    iterations=iteration,
                    stop_reason="stop_condition",
                    stop_detail=stop.reason,
                )

            if outcome.should_pause:
                return self._pause(thread, prompt, outcome, total_usage, iteration, last_response)

            if self.verify_completion is None:
                thread.append(CompletionEvent(result=last_response, verified=False, iteration=iteration))
                return AgentResult(
                    response=last_response,
                    thread=thread,
                    usage=total_usage,
                    iterations=iteration,
                    stop_reason="completed",
                )

            try:
                verdict = await self._verify(last_response, iteration, thread, prompt)
            except Exception as e:
                consecutive_errors += 1
                if not await self._record_error(e, ctx, consecutive_errors):
                    return self._max_errors_result(thread, total_usage, iteration, last_response)
                iteration += 1
                continue

            if verdict.complete:
                thread.append(CompletionEvent(result=last_response, verified=True, iteration=iteration))
                return AgentResult(
                    response=last_response,
                    thread=thread,
                    usage=total_usage,
                    iterations=iteration,
                    stop_reason="completed",
                )

            reason = verdict.reason or "no reason given"
            logger.debug(f"Verification failed at iteration {iteration}: {reason}")
            thread.append(MessageEvent(
                role="user",
                content=f"Verification failed: {reason}. Please try again.",
                iteration=iteration,
            ))
            iteration += 1

    async def _run_tool_steps(
        self, thread: Thread, iteration: int,
    ) -> tuple[ModelResponse, TokenUsage, ToolBatchOutcome]:
        """
        The model ⇄ tools sub-loop of one iteration.

        Bounded by max_tool_calls_per_iteration model calls; ends early when
        the model answers without tool calls or a batch asks to pause.
        """
        context_injection = self.context_manager.build_context_injection(thread)
        messages = build_messages(thread, self.instructions, context_injection, self.context_mode)
        schemas = self.registry.get_schemas()

        usage = TokenUsage()
        outcome = ToolBatchOutcome()

        for step in range(self.max_tool_calls_per_iteration):
            response = await self.provider.invoke(messages, schemas)
            usage = usage + response.usage
            if not response.has_tool_calls:
                break

            logger.debug(
                f"Iteration {iteration} step {step}: "
                f"{len(response.tool_calls)} tool call(s) {[c.name for c in response.tool_calls]}"
            )
            outcome = await self.executor.execute(response.tool_calls, thread, iteration, step)

            resolved = [
                ToolCall(name=c.name, id=self.executor.resolve_call_id(c, step), args=dict(c.args or {}))
                for c in response.tool_calls
            ]
            messages.append(ChatMessage(role="assistant", content=response.text, tool_calls=resolved))
            for result in outcome.results:
                messages.append(ChatMessage(
                    role="tool", content=str(result.result), tool_call_id=result.tool_call_id,
                ))

            if outcome.should_pause:
                break
        else:
            logger.warning(
                f"Iteration {iteration} hit max_tool_calls_per_iteration "
                f"({self.max_tool_calls_per_iteration})"
            )

        return response, usage, outcome

    async def _verify(self, result: str, iteration: int, thread: Thread, prompt: str) -> VerifyResult:
        verdict = self.verify_completion(VerifyContext(
            result=result, iteration=iteration, thread=thread, original_prompt=prompt,
        ))
        if inspect.isawaitable(verdict):
            verdict = await verdict
        return verdict

    async def _record_error(
        self, error: Exception, ctx: MiddlewareContext, consecutive_errors: int,
    ) -> bool:
        """
        Log an iteration failure on the thread and run the end-of-iteration hooks.

        Returns whether the run may retry.
        """
        recoverable = consecutive_errors < MAX_CONSECUTIVE_ERRORS
        ctx.thread.append(ErrorEvent(
            error=compact_error(error), recoverable=recoverable, iteration=ctx.iteration,
        ))
        if recoverable:
            logger.warning(
                f"Iteration {ctx.iteration} failed ({consecutive_errors}/"
                f"{MAX_CONSECUTIVE_ERRORS}): {compact_error(error)}"
            )
        else:
            logger.error(
                f"Giving up after {consecutive_errors} consecutive errors: {compact_error(error)}"
            )

        # the failure is already on the thread; a hook that fails again is only logged
        try:
            await self.middleware.after_iteration(ctx, error)
            if self.on_iteration_end is not None:
                await call_hook(self.on_iteration_end, ctx.iteration, error)
        except Exception as hook_error:
            logger.warning(
                f"End-of-iteration hook failed after error at iteration {ctx.iteration}: "
                f"{compact_error(hook_error)}"
            )

        return recoverable

    @staticmethod
    def _max_errors_result(thread: Thread, usage: TokenUsage, iteration: int, response: str) -> AgentResult:
        return AgentResult(
            response=response,
            thread=thread,
            usage=usage,
            iterations=iteration,
            stop_reason="max_errors",
            stop_detail=f"{MAX_CONSECUTIVE_ERRORS} consecutive errors",
        )

    def _pause(
        self,
        thread: Thread,
        prompt: str,
        outcome: ToolBatchOutcome,
        usage: TokenUsage,
        iteration: int,
        response: str,
    ) -> PendingResult:
        # the model's own question wins over the generic approval notice
        if outcome.human_input_request is not None:
            detail = "Human input requested"
        else:
            tool_name = outcome.interrupted_tools[0]
            thread.append(HumanInputRequestedEvent(
                question=f'Tool "{tool_name}" requires approval before execution.',
                iteration=iteration,
            ))
            detail = f'Interrupted: tool "{tool_name}" requires approval'

        logger.info(f"Pausing thread {thread.id} at iteration {iteration}: {detail}")
        return PendingResult(
            response=response,
            thread=thread,
            usage=usage,
            iterations=iteration,
            pending=PendingState(thread=thread, iteration=iteration, prompt=prompt),
            agent=self,
            stop_detail=detail,
        )
