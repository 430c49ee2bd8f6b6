"""
Tool batch dispatch.

Executes the tool calls of one assistant message, possibly concurrently,
and returns one outcome per call in the order the calls were requested.
Outcomes are collected by joining every future first and then reading
them in request order, never in completion order.
"""

import json
import logging
import time
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import Optional, Sequence

from ..errors import ToolError, ToolExecutionError, ToolTimeoutError
from ..models import Message, ToolCall
from ..tools.registry import ToolRegistry
from ..tracing import TracingContext

logger = logging.getLogger(__name__)


@dataclass
class ToolOutcome:
    """Result of one tool call, success or failure."""

    call: ToolCall
    content: str
    error: Optional[ToolError] = None
    duration_ms: float = 0.0

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_message(self) -> Message:
        return Message.tool_result(self.call.id, self.content)


def error_content(error: ToolError) -> str:
    """Serialize a tool failure for the model."""
    return json.dumps(error.to_payload(), default=str)


class ToolDispatcher:
    """
    Runs tool batches against a registry.

    A batch with more than one call runs on a thread pool when
    ``max_workers > 1``. ``tool_timeout`` bounds the wait for the whole
    batch; calls still running after it are reported as ToolTimeoutError
    and their threads are abandoned.
    """

    def __init__(
        self,
        registry: ToolRegistry,
        max_workers: int = 4,
        tool_timeout: Optional[float] = None,
    ):
        self.registry = registry
        self.max_workers = max(1, max_workers)
        self.tool_timeout = tool_timeout

    def dispatch(
        self,
        tool_calls: Sequence[ToolCall],
        tracing_context: Optional[TracingContext] = None,
        id_prefix: str = "",
    ) -> list[ToolOutcome]:
        """Execute a batch and return outcomes in request order."""
        if not tool_calls:
            return []

        concurrent = len(tool_calls) > 1 and self.max_workers > 1
        if not concurrent and self.tool_timeout is None:
            return [self._execute(call, tracing_context, id_prefix) for call in tool_calls]

        executor = ThreadPoolExecutor(
            max_workers=min(self.max_workers, len(tool_calls)),
            thread_name_prefix="tool",
        )
        try:
            futures = [
                executor.submit(self._execute, call, tracing_context, id_prefix)
                for call in tool_calls
            ]
            done, _ = wait(futures, timeout=self.tool_timeout)

            outcomes: list[ToolOutcome] = []
            for call, future in zip(tool_calls, futures):
                if future in done:
                    outcomes.append(future.result())
                    continue
                future.cancel()
                error = ToolTimeoutError(call.name, self.tool_timeout or 0.0)
                logger.warning("%s%s", id_prefix, error.message)
                outcomes.append(
                    ToolOutcome(
                        call=call,
                        content=error_content(error),
                        error=error,
                        duration_ms=(self.tool_timeout or 0.0) * 1000,
                    )
                )
            return outcomes
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

    def _execute(
        self,
        call: ToolCall,
        tracing_context: Optional[TracingContext],
        id_prefix: str,
    ) -> ToolOutcome:
        """Execute one call, converting every failure into an outcome."""
        if tracing_context:
            with tracing_context.span(name=f"tool:{call.name}", input=call.arguments) as span:
                outcome = self._invoke(call, id_prefix)
                span.set_output({"result": outcome.content[:500]})
                if not outcome.ok:
                    span.set_status("error")
                return outcome
        return self._invoke(call, id_prefix)

    def _invoke(self, call: ToolCall, id_prefix: str) -> ToolOutcome:
        start = time.monotonic()
        logger.debug("%sExecuting tool '%s' (%s)", id_prefix, call.name, call.id)
        try:
            value = self.registry.invoke(call.name, call.arguments)
            content = self.registry.format_result(call.name, value)
            error = None
        except ToolError as e:
            logger.warning("%sTool '%s' failed: %s", id_prefix, call.name, e.message)
            content, error = error_content(e), e
        except Exception as e:
            # formatter failures land here; handler failures are already ToolErrors
            wrapped = ToolExecutionError(call.name, e)
            logger.error("%sTool '%s' result formatting failed: %s", id_prefix, call.name, e)
            content, error = error_content(wrapped), wrapped

        return ToolOutcome(
            call=call,
            content=content,
            error=error,
            duration_ms=(time.monotonic() - start) * 1000,
        )
