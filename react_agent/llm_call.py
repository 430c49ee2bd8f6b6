"""
Model Client for react-agent.

Marshals a Conversation to an OpenAI-compatible chat-completion endpoint
(with tool descriptors) and unmarshals the reply into a ModelReply. The
client never retries; retry policy belongs to the orchestrator.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Optional

import openai
from openai import OpenAI

from .config import config
from .errors import (
    MalformedReplyError,
    UpstreamRateLimitedError,
    UpstreamRejectedError,
    UpstreamUnavailableError,
)
from .models import Conversation, Message, ModelConfig, ToolCall, new_tool_call_id

logger = logging.getLogger(__name__)


@dataclass
class ModelReply:
    """Either a final answer (no tool calls) or a tool request."""

    content: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)
    finish_reason: Optional[str] = None
    usage: Optional[dict] = None

    @property
    def is_final(self) -> bool:
        return not self.tool_calls

    def to_message(self) -> Message:
        return Message.assistant(content=self.content, tool_calls=self.tool_calls)


class ModelClient:
    """Chat-completion client for the upstream model endpoint."""

    def __init__(
        self,
        model_config: Optional[ModelConfig] = None,
        base_url: Optional[str] = None,
    ):
        self.model_config = model_config or config.model
        self.base_url = base_url or self.model_config.base_url
        self.model = self.model_config.model
        self._client = OpenAI(
            base_url=self.base_url,
            api_key=self.model_config.api_key or "not-needed",
            timeout=self.model_config.request_timeout,
            max_retries=0,  # retries are the orchestrator's decision
        )

    def complete(
        self,
        conversation: Conversation,
        tools: Optional[list[dict]] = None,
        timeout: Optional[float] = None,
    ) -> ModelReply:
        """
        Send the conversation upstream and parse the reply.

        Args:
            conversation: Full ordered conversation.
            tools: OpenAI function-tool descriptors offered to the model.
            timeout: Per-call timeout in seconds (overrides the client default).

        Returns:
            ModelReply

        Raises:
            UpstreamUnavailableError: Connection failure, timeout or 5xx.
            UpstreamRateLimitedError: HTTP 429.
            UpstreamRejectedError: Any other 4xx.
            MalformedReplyError: The response cannot be parsed into a ModelReply.
        """
        create_kwargs: dict[str, Any] = {
            "model": self.model,
            "messages": conversation.to_wire(),
            "temperature": self.model_config.temperature,
        }
        if self.model_config.max_tokens:
            create_kwargs["max_tokens"] = self.model_config.max_tokens
        if tools:
            create_kwargs["tools"] = tools
        if timeout is not None:
            create_kwargs["timeout"] = timeout

        try:
            response = self._client.chat.completions.create(**create_kwargs)
        except openai.APITimeoutError as e:
            raise UpstreamUnavailableError(f"Model call timed out: {e}") from e
        except openai.APIConnectionError as e:
            raise UpstreamUnavailableError(f"Cannot reach model endpoint: {e}") from e
        except openai.RateLimitError as e:
            raise UpstreamRateLimitedError(
                f"Model endpoint rate limited the request: {e}",
                retry_after=_retry_after(e),
            ) from e
        except openai.InternalServerError as e:
            raise UpstreamUnavailableError(
                f"Model endpoint returned {e.status_code}: {e}"
            ) from e
        except openai.APIStatusError as e:
            raise UpstreamRejectedError(
                f"Model endpoint rejected the request ({e.status_code}): {e}",
                status_code=e.status_code,
            ) from e
        except openai.APIResponseValidationError as e:
            raise MalformedReplyError(f"Unparseable model response: {e}") from e

        return self.parse_response(response)

    @staticmethod
    def parse_response(response: Any) -> ModelReply:
        """
        Convert a chat-completion response into a ModelReply.

        Raises:
            MalformedReplyError: No choices, undecodable tool arguments,
                duplicate tool call ids, or neither content nor tool calls.
        """
        choices = getattr(response, "choices", None)
        if not choices:
            raise MalformedReplyError("Model response has no choices")

        choice = choices[0]
        message = getattr(choice, "message", None)
        if message is None:
            raise MalformedReplyError("Model response choice has no message")

        content = message.content or ""
        tool_calls: list[ToolCall] = []
        seen_ids: set[str] = set()

        for raw in message.tool_calls or []:
            function = getattr(raw, "function", None)
            name = getattr(function, "name", None)
            if not name:
                raise MalformedReplyError("Tool call without a function name")

            arguments = _decode_arguments(name, getattr(function, "arguments", None))

            call_id = getattr(raw, "id", None) or new_tool_call_id()
            if call_id in seen_ids:
                raise MalformedReplyError(f"Duplicate tool call id '{call_id}' in reply")
            seen_ids.add(call_id)
            tool_calls.append(ToolCall(id=call_id, name=name, arguments=arguments))

        if not tool_calls and not content.strip():
            raise MalformedReplyError("Model reply has neither content nor tool calls")

        usage = None
        raw_usage = getattr(response, "usage", None)
        if raw_usage is not None:
            usage = {
                "prompt_tokens": getattr(raw_usage, "prompt_tokens", None),
                "completion_tokens": getattr(raw_usage, "completion_tokens", None),
                "total_tokens": getattr(raw_usage, "total_tokens", None),
            }

        return ModelReply(
            content=content,
            tool_calls=tool_calls,
            finish_reason=getattr(choice, "finish_reason", None),
            usage=usage,
        )

    def close(self) -> None:
        """Close the underlying OpenAI client."""
        try:
            self._client.close()
        except Exception as e:
            logger.debug("Error closing OpenAI client: %s", e)


def _decode_arguments(name: str, raw: Any) -> dict:
    """Decode the JSON argument string of a tool call."""
    if raw is None or raw == "":
        return {}
    if isinstance(raw, dict):
        return raw
    try:
        arguments = json.loads(raw)
    except (json.JSONDecodeError, TypeError) as e:
        logger.warning("Failed to parse arguments for '%s': %s", name, str(raw)[:200])
        raise MalformedReplyError(f"Arguments for '{name}' are not valid JSON: {e}") from e
    if not isinstance(arguments, dict):
        raise MalformedReplyError(
            f"Arguments for '{name}' must be a JSON object, got {type(arguments).__name__}"
        )
    return arguments


def _retry_after(error: openai.APIStatusError) -> Optional[float]:
    """Read the Retry-After header (seconds) from a rate-limit response."""
    response = getattr(error, "response", None)
    headers = getattr(response, "headers", None)
    if not headers:
        return None
    value = headers.get("retry-after")
    try:
        return float(value) if value is not None else None
    except (TypeError, ValueError):
        return None
