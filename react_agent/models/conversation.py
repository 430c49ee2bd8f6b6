"""
Conversation data model.

Messages follow the OpenAI chat-completion shape (role/content plus
tool_calls on assistant turns and tool_call_id on tool results). The
Conversation is append-only and enforces the correlation invariants
between tool calls and their results.
"""

import json
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterator, Optional

from ..errors import ConversationError


class Role(str, Enum):
    """Author of a message."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


def new_tool_call_id() -> str:
    """Generate a correlation id for a tool call the upstream left unnamed."""
    return f"call_{uuid.uuid4().hex[:12]}"


@dataclass(frozen=True)
class ToolCall:
    """A single tool invocation requested by the model."""

    id: str
    name: str
    arguments: dict = field(default_factory=dict)

    def to_wire(self) -> dict:
        return {
            "id": self.id,
            "type": "function",
            "function": {
                "name": self.name,
                "arguments": json.dumps(self.arguments),
            },
        }


@dataclass(frozen=True)
class Message:
    """A single turn in the conversation."""

    role: Role
    content: str = ""
    tool_calls: tuple[ToolCall, ...] = ()
    tool_call_id: Optional[str] = None

    def __post_init__(self):
        if self.tool_calls and self.role is not Role.ASSISTANT:
            raise ConversationError(
                f"tool_calls are only allowed on assistant messages, not {self.role.value}"
            )
        if self.role is Role.TOOL and not self.tool_call_id:
            raise ConversationError("tool messages require a tool_call_id")
        if self.tool_call_id and self.role is not Role.TOOL:
            raise ConversationError(
                f"tool_call_id is only allowed on tool messages, not {self.role.value}"
            )

    @classmethod
    def system(cls, content: str) -> "Message":
        return cls(role=Role.SYSTEM, content=content)

    @classmethod
    def user(cls, content: str) -> "Message":
        return cls(role=Role.USER, content=content)

    @classmethod
    def assistant(
        cls, content: str = "", tool_calls: Optional[list[ToolCall]] = None
    ) -> "Message":
        return cls(role=Role.ASSISTANT, content=content, tool_calls=tuple(tool_calls or ()))

    @classmethod
    def tool_result(cls, tool_call_id: str, content: str) -> "Message":
        return cls(role=Role.TOOL, content=content, tool_call_id=tool_call_id)

    def to_wire(self) -> dict[str, Any]:
        """Render as an OpenAI chat-completion message dict."""
        wire: dict[str, Any] = {"role": self.role.value}
        if self.tool_calls:
            # OpenAI accepts null content alongside tool calls
            wire["content"] = self.content or None
            wire["tool_calls"] = [tc.to_wire() for tc in self.tool_calls]
        else:
            wire["content"] = self.content
        if self.tool_call_id:
            wire["tool_call_id"] = self.tool_call_id
        return wire

    def to_dict(self) -> dict[str, Any]:
        """Plain-dict form used by the API and traces."""
        data: dict[str, Any] = {"role": self.role.value, "content": self.content}
        if self.tool_calls:
            data["tool_calls"] = [
                {"id": tc.id, "name": tc.name, "arguments": tc.arguments}
                for tc in self.tool_calls
            ]
        if self.tool_call_id:
            data["tool_call_id"] = self.tool_call_id
        return data


class Conversation:
    """
    Ordered, append-only message log owned by a single run.

    Invariants:
        - every tool message answers exactly one earlier, still-pending tool call
        - no assistant message is appended while tool calls are pending
    """

    def __init__(self, messages: Optional[list[Message]] = None):
        self._messages: list[Message] = []
        self._pending: dict[str, str] = {}  # tool_call_id -> tool name
        self._resolved: set[str] = set()
        for message in messages or []:
            self.append(message)

    @classmethod
    def seed(cls, task: str, system_instruction: Optional[str] = None) -> "Conversation":
        """Start a conversation with an optional system message and the user task."""
        conversation = cls()
        if system_instruction:
            conversation.append(Message.system(system_instruction))
        conversation.append(Message.user(task))
        return conversation

    def append(self, message: Message) -> None:
        """Append a message, enforcing tool-call correlation."""
        if message.role is Role.ASSISTANT:
            if self._pending:
                raise ConversationError(
                    "Cannot append assistant message while tool calls are pending: "
                    + ", ".join(self._pending)
                )
            for tc in message.tool_calls:
                if tc.id in self._pending or tc.id in self._resolved:
                    raise ConversationError(f"Duplicate tool call id '{tc.id}'")
            for tc in message.tool_calls:
                self._pending[tc.id] = tc.name

        elif message.role is Role.TOOL:
            call_id = message.tool_call_id
            if call_id in self._resolved:
                raise ConversationError(f"Tool call '{call_id}' was already resolved")
            if call_id not in self._pending:
                raise ConversationError(
                    f"Tool result references unknown tool call '{call_id}'"
                )
            del self._pending[call_id]
            self._resolved.add(call_id)

        self._messages.append(message)

    @property
    def messages(self) -> tuple[Message, ...]:
        """Immutable snapshot of the log."""
        return tuple(self._messages)

    @property
    def pending_tool_call_ids(self) -> list[str]:
        return list(self._pending)

    def has_tool_call_id(self, call_id: str) -> bool:
        """True if an assistant message already used this id."""
        return call_id in self._pending or call_id in self._resolved

    def tool_results(self) -> list[Message]:
        return [m for m in self._messages if m.role is Role.TOOL]

    def last(self) -> Optional[Message]:
        return self._messages[-1] if self._messages else None

    def to_wire(self) -> list[dict[str, Any]]:
        return [m.to_wire() for m in self._messages]

    def to_dicts(self) -> list[dict[str, Any]]:
        return [m.to_dict() for m in self._messages]

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[Message]:
        return iter(tuple(self._messages))

    def __repr__(self) -> str:
        return f"Conversation(messages={len(self._messages)}, pending={len(self._pending)})"
