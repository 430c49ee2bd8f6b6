"""
ReAct orchestration loop.

An explicit state machine alternating model calls and tool batches over an
append-only conversation, with step, time and cancellation budgets.
"""

from .dispatch import ToolDispatcher, ToolOutcome
from .loop import Orchestrator, RetryPolicy, error_kind_for
from .state import CancellationToken, Run, RunEvent, RunState, TRANSITIONS
from .tool_defs import build_tool_definition, build_tool_definitions

__all__ = [
    "CancellationToken",
    "Orchestrator",
    "RetryPolicy",
    "Run",
    "RunEvent",
    "RunState",
    "TRANSITIONS",
    "ToolDispatcher",
    "ToolOutcome",
    "build_tool_definition",
    "build_tool_definitions",
    "error_kind_for",
]
