"""
Pydantic schemas for the API.

The chat schemas match the OpenAI Chat API format to enable compatibility
with tools like OpenWebUI, LiteLLM, and other OpenAI-compatible clients.
The run schemas expose the agent's native result shape.
"""

import time
import uuid
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator

MODEL_ID = "react-agent"


# =============================================================================
# Native run API
# =============================================================================


class RunRequest(BaseModel):
    """Request body for /v1/runs."""

    task: str = Field(..., min_length=1, description="The user's question or task")
    system_instruction: Optional[str] = Field(
        default=None, description="Optional behavioral instruction (system message)"
    )
    max_steps: Optional[int] = Field(
        default=None, ge=0, le=100, description="Model-call budget for this run"
    )

    model_config = {
        "json_schema_extra": {
            "example": {
                "task": "What's the weather in Paris?",
                "max_steps": 5,
            }
        }
    }


class RunErrorInfo(BaseModel):
    """Terminal error of a run."""

    kind: str
    detail: str


class RunResponse(BaseModel):
    """Response body for /v1/runs."""

    id: str = Field(..., description="Execution id used in logs and traces")
    status: Literal["answer", "exhausted", "error"]
    answer: Optional[str] = None
    reason: Optional[str] = Field(default=None, description="Exhaustion reason")
    error: Optional[RunErrorInfo] = None
    steps: int = 0
    conversation: list[dict[str, Any]] = Field(default_factory=list)


class ToolInfo(BaseModel):
    """A registered tool, as offered to the model."""

    name: str
    description: str
    parameters: dict[str, Any]


class ToolListResponse(BaseModel):
    """Response body for /v1/tools."""

    object: Literal["list"] = "list"
    data: list[ToolInfo]


# =============================================================================
# OpenAI-compatible chat API
# =============================================================================


class ContentPart(BaseModel):
    """A single part of multimodal content."""

    type: Literal["text", "image_url"] = Field(
        ..., description="The type of content part"
    )
    text: Optional[str] = Field(default=None, description="Text content (for type='text')")
    image_url: Optional[dict] = Field(
        default=None, description="Image URL object (for type='image_url')"
    )


class ChatMessage(BaseModel):
    """A single message in a chat conversation."""

    role: Literal["system", "user", "assistant"] = Field(
        ..., description="The role of the message author"
    )
    content: Union[str, list[ContentPart]] = Field(
        ..., description="The content of the message (string or list of content parts)"
    )

    @field_validator("content", mode="before")
    @classmethod
    def normalize_content(cls, v):
        """Normalize content to handle both string and list formats."""
        if isinstance(v, str):
            return v
        if isinstance(v, list):
            return [
                ContentPart(**item) if isinstance(item, dict) else item for item in v
            ]
        return v

    def get_text_content(self) -> str:
        """Extract text content regardless of format."""
        if isinstance(self.content, str):
            return self.content
        text_parts = []
        for part in self.content:
            if part.type == "text" and part.text:
                text_parts.append(part.text)
        return "\n".join(text_parts)


class ChatCompletionRequest(BaseModel):
    """Request body for /v1/chat/completions endpoint."""

    model: str = Field(
        default=MODEL_ID,
        description="Model ID to use (always react-agent)",
    )
    messages: list[ChatMessage] = Field(
        ..., description="List of messages in the conversation", min_length=1
    )
    temperature: Optional[float] = Field(
        default=None, ge=0.0, le=2.0, description="Ignored; the agent's model config applies"
    )
    max_tokens: Optional[int] = Field(
        default=None, ge=1, description="Ignored; the agent's model config applies"
    )
    max_steps: Optional[int] = Field(
        default=None, ge=0, le=100, description="Model-call budget for this run"
    )
    stream: Optional[bool] = Field(
        default=False, description="Return the answer as Server-Sent Events"
    )
    include_trace: Optional[bool] = Field(
        default=False, description="Include the run trace in the response"
    )

    model_config = {
        "json_schema_extra": {
            "example": {
                "model": MODEL_ID,
                "messages": [{"role": "user", "content": "What is 2 + 2?"}],
            }
        }
    }


class TraceToolCall(BaseModel):
    """A tool call made during a step, with its result."""

    id: str
    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)
    result: Optional[str] = None


class TraceStep(BaseModel):
    """A single model step in the run trace."""

    step: int = Field(..., description="Step number in the run")
    tool_calls: list[TraceToolCall] = Field(
        default_factory=list, description="Tool calls requested at this step"
    )
    is_final: bool = Field(default=False, description="Whether this was the final step")
    final_answer: Optional[str] = Field(default=None, description="The answer, if final")


class ChatCompletionMessage(BaseModel):
    """Message in a chat completion response."""

    role: Literal["assistant"] = "assistant"
    content: str


class ChatCompletionChoice(BaseModel):
    """A single choice in a chat completion response."""

    index: int = 0
    message: ChatCompletionMessage
    finish_reason: Literal["stop", "length"] = "stop"


class UsageInfo(BaseModel):
    """Token usage information."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class ChatCompletionResponse(BaseModel):
    """Response body for /v1/chat/completions endpoint."""

    id: str = Field(default_factory=lambda: f"chatcmpl-{uuid.uuid4().hex[:12]}")
    object: Literal["chat.completion"] = "chat.completion"
    created: int = Field(default_factory=lambda: int(time.time()))
    model: str = MODEL_ID
    choices: list[ChatCompletionChoice]
    usage: UsageInfo = Field(default_factory=UsageInfo)
    trace: Optional[list[TraceStep]] = Field(
        default=None, description="Run trace (when include_trace=True)"
    )


class ModelInfo(BaseModel):
    """Information about an available model."""

    id: str
    object: Literal["model"] = "model"
    created: int = Field(default_factory=lambda: int(time.time()))
    owned_by: str = MODEL_ID


class ModelListResponse(BaseModel):
    """Response body for /v1/models endpoint."""

    object: Literal["list"] = "list"
    data: list[ModelInfo]


class HealthResponse(BaseModel):
    """Response body for /health endpoint."""

    status: Literal["healthy", "unhealthy"]
    version: str
    model: str
    tools: int = 0


class ErrorDetail(BaseModel):
    """Error detail in OpenAI format."""

    message: str
    type: str = "server_error"
    code: Optional[str] = None


class ErrorResponse(BaseModel):
    """Error response in OpenAI format."""

    error: ErrorDetail
