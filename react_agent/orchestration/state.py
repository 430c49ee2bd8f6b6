"""
Run state machine.

Branches are enumerated in an explicit transition table rather than
computed by callbacks; an illegal move raises InvalidTransitionError.
"""

import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from ..errors import InvalidTransitionError
from ..models import Conversation, Message, RunResult


class RunState(str, Enum):
    """States of a single run."""

    SEEDED = "seeded"
    AWAITING_MODEL = "awaiting_model"
    TOOL_DISPATCH = "tool_dispatch"
    TERMINAL_ANSWER = "terminal_answer"
    TERMINAL_EXHAUSTED = "terminal_exhausted"
    TERMINAL_ERROR = "terminal_error"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES


TERMINAL_STATES = frozenset(
    {RunState.TERMINAL_ANSWER, RunState.TERMINAL_EXHAUSTED, RunState.TERMINAL_ERROR}
)

# Exhaustion and errors (cancellation included) may occur at any boundary
TRANSITIONS: dict[RunState, frozenset[RunState]] = {
    RunState.SEEDED: frozenset(
        {RunState.AWAITING_MODEL, RunState.TERMINAL_EXHAUSTED, RunState.TERMINAL_ERROR}
    ),
    RunState.AWAITING_MODEL: frozenset(
        {
            RunState.TOOL_DISPATCH,
            RunState.TERMINAL_ANSWER,
            RunState.TERMINAL_EXHAUSTED,
            RunState.TERMINAL_ERROR,
        }
    ),
    RunState.TOOL_DISPATCH: frozenset(
        {RunState.AWAITING_MODEL, RunState.TERMINAL_EXHAUSTED, RunState.TERMINAL_ERROR}
    ),
    RunState.TERMINAL_ANSWER: frozenset(),
    RunState.TERMINAL_EXHAUSTED: frozenset(),
    RunState.TERMINAL_ERROR: frozenset(),
}


class CancellationToken:
    """Cooperative cancellation flag, checked at state-transition boundaries."""

    def __init__(self):
        self._event = threading.Event()
        self.reason: Optional[str] = None

    def cancel(self, reason: str = "Run cancelled") -> None:
        self.reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


@dataclass
class RunEvent:
    """Snapshot emitted on every state transition."""

    state: RunState
    step: int
    messages: tuple[Message, ...] = ()
    result: Optional[RunResult] = None

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal


@dataclass
class Run:
    """One execution of the loop for a single task."""

    conversation: Conversation
    max_steps: int
    run_id: str = ""
    deadline: Optional[float] = None  # time.monotonic() value
    state: RunState = RunState.SEEDED
    step: int = 0
    history: list[RunState] = field(default_factory=lambda: [RunState.SEEDED])
    emitted: int = 0  # messages already reported through events

    def transition(self, target: RunState) -> None:
        if target not in TRANSITIONS[self.state]:
            raise InvalidTransitionError(
                f"Illegal transition {self.state.value} -> {target.value}"
            )
        self.state = target
        self.history.append(target)

    @property
    def steps_remaining(self) -> int:
        return max(self.max_steps - self.step, 0)

    def time_remaining(self) -> Optional[float]:
        if self.deadline is None:
            return None
        return self.deadline - time.monotonic()

    def deadline_passed(self) -> bool:
        remaining = self.time_remaining()
        return remaining is not None and remaining <= 0
