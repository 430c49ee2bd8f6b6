"""
Core orchestration loop.

Implements the ReAct cycle as an explicit state machine:

    SEEDED -> AWAITING_MODEL -> (TOOL_DISPATCH <-> AWAITING_MODEL)
           -> TERMINAL_ANSWER | TERMINAL_EXHAUSTED | TERMINAL_ERROR

The conversation grows append-only: each model reply is appended, and the
results of any requested tool calls are appended in request order before
the model is asked again. Tool failures are written into the conversation
for the model to handle; only model-client failures end a run in error.
Callers always get a RunResult, never an exception.
"""

import logging
import time
import uuid
from dataclasses import dataclass, replace
from typing import Callable, Iterator, Optional

from ..errors import (
    InvalidTransitionError,
    MalformedReplyError,
    ModelClientError,
    UpstreamRateLimitedError,
    UpstreamRejectedError,
    UpstreamUnavailableError,
)
from ..models import (
    Conversation,
    ErrorKind,
    Exhausted,
    ExhaustionReason,
    FinalAnswer,
    Message,
    RetryConfig,
    Role,
    RunError,
    RunResult,
    new_tool_call_id,
)
from ..tools.registry import ToolRegistry
from ..tracing import TracingContext
from .dispatch import ToolDispatcher
from .state import CancellationToken, Run, RunEvent, RunState
from .tool_defs import build_tool_definitions

logger = logging.getLogger(__name__)

# Most specific first
_ERROR_KINDS: tuple[tuple[type, ErrorKind], ...] = (
    (UpstreamRateLimitedError, ErrorKind.UPSTREAM_RATE_LIMITED),
    (UpstreamUnavailableError, ErrorKind.UPSTREAM_UNAVAILABLE),
    (UpstreamRejectedError, ErrorKind.UPSTREAM_REJECTED),
    (MalformedReplyError, ErrorKind.MALFORMED_REPLY),
)


def error_kind_for(error: ModelClientError) -> ErrorKind:
    for error_type, kind in _ERROR_KINDS:
        if isinstance(error, error_type):
            return kind
    return ErrorKind.INTERNAL


@dataclass
class RetryPolicy:
    """Bounded exponential backoff for retryable model-client errors."""

    max_attempts: int = 3
    backoff_base: float = 0.5
    backoff_max: float = 8.0

    @classmethod
    def from_config(cls, retry_config: RetryConfig) -> "RetryPolicy":
        return cls(
            max_attempts=max(1, retry_config.max_attempts),
            backoff_base=retry_config.backoff_base,
            backoff_max=retry_config.backoff_max,
        )

    def delay(self, attempt: int, error: ModelClientError) -> float:
        """Seconds to wait after the given (1-based) failed attempt."""
        delay = min(self.backoff_base * (2 ** (attempt - 1)), self.backoff_max)
        retry_after = getattr(error, "retry_after", None)
        if retry_after:
            delay = max(delay, retry_after)
        return delay


class _RunCancelled(Exception):
    """Raised inside the loop when the cancellation token fires mid-retry."""


class Orchestrator:
    """
    Drives runs of the reasoning loop.

    One Orchestrator may serve many concurrent runs: per-run state lives in
    a Run object created by ``iter_run``, and the registry is frozen here so
    runs share it read-only.

    Per-run flow:
        1. Seed the conversation with the optional system instruction and the task
        2. Check cancellation and budgets
        3. Ask the model (retrying transient upstream failures)
        4. Final reply: return it
        5. Tool request: execute the batch, append results in request order, go to 2
    """

    def __init__(
        self,
        model_client,
        registry: ToolRegistry,
        max_steps: int = 10,
        model_timeout: Optional[float] = None,
        run_timeout: Optional[float] = None,
        tool_timeout: Optional[float] = None,
        max_tool_workers: int = 4,
        retry_policy: Optional[RetryPolicy] = None,
        system_instruction: Optional[str] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.model_client = model_client
        self.registry = registry.freeze()
        self.max_steps = max_steps
        self.model_timeout = model_timeout
        self.run_timeout = run_timeout
        self.retry_policy = retry_policy or RetryPolicy()
        self.system_instruction = system_instruction
        self._sleep = sleep
        self._dispatcher = ToolDispatcher(
            self.registry, max_workers=max_tool_workers, tool_timeout=tool_timeout
        )
        self._tool_definitions = build_tool_definitions(self.registry)

    @property
    def tool_definitions(self) -> list[dict]:
        return list(self._tool_definitions)

    def run(
        self,
        task: str,
        system_instruction: Optional[str] = None,
        max_steps: Optional[int] = None,
        cancel_token: Optional[CancellationToken] = None,
        execution_id: Optional[str] = None,
        tracing_context: Optional[TracingContext] = None,
    ) -> RunResult:
        """
        Run the loop for a task to completion.

        Args:
            task: The user's question or task.
            system_instruction: Optional behavioral instruction (system message).
            max_steps: Model-call budget; defaults to the orchestrator's.
            cancel_token: Cooperative cancellation flag.
            execution_id: Correlation id for logs and traces.
            tracing_context: Optional Langfuse tracing context.

        Returns:
            FinalAnswer, Exhausted or RunError.
        """
        result: Optional[RunResult] = None
        for event in self.iter_run(
            task,
            system_instruction=system_instruction,
            max_steps=max_steps,
            cancel_token=cancel_token,
            execution_id=execution_id,
            tracing_context=tracing_context,
        ):
            if event.result is not None:
                result = event.result
        if result is None:
            raise InvalidTransitionError("Run ended without a terminal event")
        return result

    def iter_run(
        self,
        task: str,
        system_instruction: Optional[str] = None,
        max_steps: Optional[int] = None,
        cancel_token: Optional[CancellationToken] = None,
        execution_id: Optional[str] = None,
        tracing_context: Optional[TracingContext] = None,
    ) -> Iterator[RunEvent]:
        """
        Run the loop, yielding a RunEvent on every state transition.

        The sequence is finite and ends with a terminal event whose
        ``result`` is set. Closing the generator abandons the run at the
        current boundary.
        """
        execution_id = execution_id or f"run-{uuid.uuid4().hex[:8]}"
        instruction = (
            system_instruction if system_instruction is not None else self.system_instruction
        )
        limit = self.max_steps if max_steps is None else max_steps
        run = Run(
            conversation=Conversation.seed(task, instruction),
            max_steps=limit,
            run_id=execution_id,
            deadline=(time.monotonic() + self.run_timeout) if self.run_timeout else None,
        )
        id_prefix = f"[{execution_id}] "
        logger.debug("%sStarting run (max_steps=%d): %s", id_prefix, limit, task)

        yield self._event(run, RunState.SEEDED)
        try:
            yield from self._drive(run, cancel_token, tracing_context, id_prefix)
        except Exception as e:
            if run.state.is_terminal:
                raise
            logger.exception("%sRun failed unexpectedly: %s", id_prefix, e)
            yield self._terminate_error(run, ErrorKind.INTERNAL, f"{type(e).__name__}: {e}")

    def _drive(
        self,
        run: Run,
        cancel_token: Optional[CancellationToken],
        tracing_context: Optional[TracingContext],
        id_prefix: str,
    ) -> Iterator[RunEvent]:
        while True:
            # Boundary: before the next model call
            stop = self._check_boundary(run, cancel_token, id_prefix)
            if stop is not None:
                yield stop
                return
            if run.step >= run.max_steps:
                logger.warning("%sMax steps (%d) reached", id_prefix, run.max_steps)
                yield self._terminate_exhausted(run, ExhaustionReason.MAX_STEPS)
                return

            run.transition(RunState.AWAITING_MODEL)
            yield self._event(run, RunState.AWAITING_MODEL)

            try:
                reply = self._call_model_with_retry(run, cancel_token, tracing_context, id_prefix)
            except _RunCancelled as e:
                yield self._terminate_error(run, ErrorKind.CANCELLED, str(e))
                return
            except ModelClientError as e:
                logger.error("%sModel call failed at step %d: %s", id_prefix, run.step + 1, e)
                yield self._terminate_error(run, error_kind_for(e), str(e))
                return

            message = self._assistant_message(run, reply, id_prefix)
            run.conversation.append(message)
            run.step += 1

            if reply.is_final:
                run.transition(RunState.TERMINAL_ANSWER)
                result = FinalAnswer(
                    content=reply.content, conversation=run.conversation, steps=run.step
                )
                self._log_trace_summary(run, id_prefix)
                yield self._event(run, RunState.TERMINAL_ANSWER, result)
                return

            # Boundary: before dispatching the tool batch
            stop = self._check_boundary(run, cancel_token, id_prefix)
            if stop is not None:
                yield stop
                return

            run.transition(RunState.TOOL_DISPATCH)
            yield self._event(run, RunState.TOOL_DISPATCH)

            logger.debug(
                "%sStep %d: dispatching %d tool call(s): %s",
                id_prefix,
                run.step,
                len(message.tool_calls),
                ", ".join(tc.name for tc in message.tool_calls),
            )
            outcomes = self._dispatcher.dispatch(
                message.tool_calls, tracing_context=tracing_context, id_prefix=id_prefix
            )
            for outcome in outcomes:
                run.conversation.append(outcome.to_message())

    def _assistant_message(self, run: Run, reply, id_prefix: str) -> Message:
        """Assistant message for a reply, with reused tool-call ids replaced."""
        seen: set[str] = set()
        tool_calls = []
        for tc in reply.tool_calls:
            if tc.id in seen or run.conversation.has_tool_call_id(tc.id):
                fresh = replace(tc, id=new_tool_call_id())
                logger.warning(
                    "%sModel reused tool call id %s for %s; using %s",
                    id_prefix,
                    tc.id,
                    tc.name,
                    fresh.id,
                )
                tc = fresh
            seen.add(tc.id)
            tool_calls.append(tc)
        return Message.assistant(content=reply.content, tool_calls=tool_calls)

    def _check_boundary(
        self,
        run: Run,
        cancel_token: Optional[CancellationToken],
        id_prefix: str,
    ) -> Optional[RunEvent]:
        """Terminal event if the run was cancelled or ran out of time."""
        if cancel_token is not None and cancel_token.cancelled:
            logger.info("%sRun cancelled at step %d", id_prefix, run.step)
            return self._terminate_error(
                run, ErrorKind.CANCELLED, cancel_token.reason or "Run cancelled"
            )
        if run.deadline_passed():
            logger.warning("%sRun time budget exhausted at step %d", id_prefix, run.step)
            return self._terminate_exhausted(run, ExhaustionReason.TIME_BUDGET)
        return None

    def _call_model_with_retry(
        self,
        run: Run,
        cancel_token: Optional[CancellationToken],
        tracing_context: Optional[TracingContext],
        id_prefix: str,
    ):
        """Call the model, retrying retryable errors without consuming steps."""
        attempt = 0
        while True:
            attempt += 1
            if cancel_token is not None and cancel_token.cancelled:
                raise _RunCancelled(cancel_token.reason or "Run cancelled")
            try:
                return self._call_model(run, tracing_context, id_prefix)
            except ModelClientError as e:
                if not e.retryable or attempt >= self.retry_policy.max_attempts:
                    raise
                delay = self.retry_policy.delay(attempt, e)
                remaining = run.time_remaining()
                if remaining is not None and delay >= remaining:
                    logger.warning(
                        "%sNot retrying: backoff %.1fs exceeds remaining run budget", id_prefix, delay
                    )
                    raise
                logger.warning(
                    "%sModel call failed (attempt %d/%d): %s; retrying in %.1fs",
                    id_prefix,
                    attempt,
                    self.retry_policy.max_attempts,
                    e,
                    delay,
                )
                self._sleep(delay)

    def _call_model(
        self,
        run: Run,
        tracing_context: Optional[TracingContext],
        id_prefix: str,
    ):
        timeout = self.model_timeout
        remaining = run.time_remaining()
        if remaining is not None:
            timeout = min(timeout, remaining) if timeout else remaining

        tools = self._tool_definitions or None
        step_num = run.step + 1
        logger.debug("%sStep %d: calling model", id_prefix, step_num)

        if not tracing_context:
            return self.model_client.complete(run.conversation, tools=tools, timeout=timeout)

        with tracing_context.generation(
            name=f"model_step_{step_num}",
            model=getattr(self.model_client, "model", "unknown"),
            input=run.conversation.to_wire(),
            model_parameters={"timeout": timeout},
        ) as gen:
            try:
                reply = self.model_client.complete(run.conversation, tools=tools, timeout=timeout)
            except ModelClientError:
                gen.set_status("error")
                raise
            gen.set_output(reply.to_message().to_dict())
            if reply.usage:
                gen.set_usage(**reply.usage)
            return reply

    def _event(
        self, run: Run, state: RunState, result: Optional[RunResult] = None
    ) -> RunEvent:
        """Build the event for a transition, carrying messages appended since the last one."""
        messages = run.conversation.messages[run.emitted:]
        run.emitted = len(run.conversation)
        return RunEvent(state=state, step=run.step, messages=messages, result=result)

    def _terminate_exhausted(self, run: Run, reason: ExhaustionReason) -> RunEvent:
        run.transition(RunState.TERMINAL_EXHAUSTED)
        result = Exhausted(conversation=run.conversation, steps=run.step, reason=reason)
        self._log_trace_summary(run, f"[{run.run_id}] ")
        return self._event(run, RunState.TERMINAL_EXHAUSTED, result)

    def _terminate_error(self, run: Run, kind: ErrorKind, detail: str) -> RunEvent:
        run.transition(RunState.TERMINAL_ERROR)
        result = RunError(kind=kind, detail=detail, conversation=run.conversation, steps=run.step)
        self._log_trace_summary(run, f"[{run.run_id}] ")
        return self._event(run, RunState.TERMINAL_ERROR, result)

    def _log_trace_summary(self, run: Run, id_prefix: str) -> None:
        """Log a compact trace summary."""
        logger.info("%s%s", id_prefix, "─" * 50)
        logger.info("%sTRACE SUMMARY (%s, %d step(s))", id_prefix, run.state.value, run.step)
        for message in run.conversation:
            if message.role is Role.ASSISTANT and message.tool_calls:
                logger.info(
                    "%s  assistant -> %s",
                    id_prefix,
                    ", ".join(tc.name for tc in message.tool_calls),
                )
            elif message.role is Role.TOOL:
                preview = message.content
                if len(preview) > 80:
                    preview = preview[:80] + "..."
                logger.info("%s  tool[%s] -> %s", id_prefix, message.tool_call_id, preview)
            elif message.role is Role.ASSISTANT:
                logger.info("%s  assistant [FINAL]", id_prefix)

    def close(self) -> None:
        """Close the underlying model client."""
        close = getattr(self.model_client, "close", None)
        if close is not None:
            close()
