"""
Shared run execution for the API routes.

One Orchestrator is built lazily and shared by every request; runs are
independent, so concurrent requests only share the frozen registry and
the model client.
"""

import logging
import threading
import uuid
from typing import Optional

from ..orchestration import Orchestrator
from ..orchestrator import build_orchestrator
from ..models import RunResult
from ..tracing import TracingContext, get_tracing_client

logger = logging.getLogger(__name__)

_orchestrator: Optional[Orchestrator] = None
_lock = threading.Lock()


def get_orchestrator() -> Orchestrator:
    """Get (building on first use) the process-wide orchestrator."""
    global _orchestrator
    with _lock:
        if _orchestrator is None:
            _orchestrator = build_orchestrator()
        return _orchestrator


def reset_orchestrator() -> None:
    """Close and drop the shared orchestrator."""
    global _orchestrator
    with _lock:
        if _orchestrator is not None:
            _orchestrator.close()
        _orchestrator = None


def execute_run(
    task: str,
    system_instruction: Optional[str] = None,
    max_steps: Optional[int] = None,
    trace_name: str = "agent_run",
    metadata: Optional[dict] = None,
) -> tuple[str, RunResult]:
    """
    Run a task on the shared orchestrator inside a root trace.

    Returns:
        (execution_id, result)
    """
    execution_id = f"exec-{uuid.uuid4().hex[:8]}"
    logger.info("[%s] Processing run: %s", execution_id, task[:100])
    logger.debug("[%s] Full task: %s", execution_id, task)

    tracing_context = TracingContext(execution_id=execution_id)
    tracing_context.start_trace(name=trace_name, task=task, metadata=metadata)

    result = get_orchestrator().run(
        task,
        system_instruction=system_instruction,
        max_steps=max_steps,
        execution_id=execution_id,
        tracing_context=tracing_context,
    )

    logger.info(
        "[%s] Run finished: status=%s steps=%d", execution_id, result.status, result.steps
    )
    tracing_context.end_trace(
        output=result.to_dict(include_conversation=False),
        status="success" if result.status == "answer" else result.status,
    )
    _flush_tracing()
    return execution_id, result


def _flush_tracing() -> None:
    """Flush tracing client if available."""
    client = get_tracing_client()
    if client:
        client.flush()
