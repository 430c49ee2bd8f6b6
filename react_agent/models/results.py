"""
Caller-facing run results.

A run always ends in exactly one of FinalAnswer, Exhausted or RunError;
the orchestrator never lets an exception escape to the caller.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Union

from .conversation import Conversation


class ErrorKind(str, Enum):
    """Stage-attributable reason for a terminal error."""

    UPSTREAM_UNAVAILABLE = "upstream_unavailable"
    UPSTREAM_RATE_LIMITED = "upstream_rate_limited"
    UPSTREAM_REJECTED = "upstream_rejected"
    MALFORMED_REPLY = "malformed_reply"
    CANCELLED = "cancelled"
    INTERNAL = "internal"


class ExhaustionReason(str, Enum):
    """Which budget ran out."""

    MAX_STEPS = "max_steps"
    TIME_BUDGET = "time_budget"


@dataclass
class FinalAnswer:
    """The model produced a terminal answer."""

    content: str
    conversation: Conversation = field(repr=False)
    steps: int = 0

    status = "answer"

    def to_dict(self, include_conversation: bool = True) -> dict[str, Any]:
        data: dict[str, Any] = {
            "status": self.status,
            "answer": self.content,
            "steps": self.steps,
        }
        if include_conversation:
            data["conversation"] = self.conversation.to_dicts()
        return data


@dataclass
class Exhausted:
    """The run hit its step or time budget without a definitive answer."""

    conversation: Conversation = field(repr=False)
    steps: int = 0
    reason: ExhaustionReason = ExhaustionReason.MAX_STEPS

    status = "exhausted"

    def to_dict(self, include_conversation: bool = True) -> dict[str, Any]:
        data: dict[str, Any] = {
            "status": self.status,
            "reason": self.reason.value,
            "steps": self.steps,
        }
        if include_conversation:
            data["conversation"] = self.conversation.to_dicts()
        return data


@dataclass
class RunError:
    """The run stopped on an unrecoverable model-side failure or cancellation."""

    kind: ErrorKind
    detail: str
    conversation: Optional[Conversation] = field(default=None, repr=False)
    steps: int = 0

    status = "error"

    def to_dict(self, include_conversation: bool = True) -> dict[str, Any]:
        data: dict[str, Any] = {
            "status": self.status,
            "error": {"kind": self.kind.value, "detail": self.detail},
            "steps": self.steps,
        }
        if include_conversation:
            data["conversation"] = (
                self.conversation.to_dicts() if self.conversation is not None else []
            )
        return data


RunResult = Union[FinalAnswer, Exhausted, RunError]
