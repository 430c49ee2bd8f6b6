"""
OpenAI-compatible chat completion endpoints.

Implements /v1/chat/completions and /v1/models to enable compatibility
with OpenAI client libraries and tools like OpenWebUI. The last user
message becomes the task and any system messages become the run's
system instruction.
"""

import json
import logging
import time
import uuid
from typing import Generator

from fastapi import APIRouter, HTTPException
from fastapi.responses import JSONResponse, StreamingResponse

from ...models import ErrorKind, Exhausted, ExhaustionReason, FinalAnswer, RunError
from ...orchestrator import get_trace
from ..runner import execute_run
from ..schemas import (
    MODEL_ID,
    ChatCompletionRequest,
    ChatCompletionResponse,
    ChatCompletionChoice,
    ChatCompletionMessage,
    UsageInfo,
    ModelInfo,
    ModelListResponse,
    ErrorDetail,
    ErrorResponse,
    TraceStep,
)

logger = logging.getLogger(__name__)

router = APIRouter()

MODEL_CREATED = int(time.time())

_EXHAUSTED_MESSAGES = {
    ExhaustionReason.MAX_STEPS: (
        "I was unable to complete the task within the allowed number of steps."
    ),
    ExhaustionReason.TIME_BUDGET: (
        "I was unable to complete the task within the allowed time."
    ),
}


@router.get(
    "/v1/models",
    response_model=ModelListResponse,
    summary="List models",
    description="List available models. Returns the react-agent as the available model.",
)
def list_models() -> ModelListResponse:
    """Return list of available models (just react-agent)."""
    return ModelListResponse(
        data=[
            ModelInfo(
                id=MODEL_ID,
                created=MODEL_CREATED,
                owned_by=MODEL_ID,
            )
        ]
    )


@router.get(
    "/v1/models/{model_id}",
    response_model=ModelInfo,
    summary="Get model",
    description="Get information about a specific model.",
)
def get_model(model_id: str) -> ModelInfo:
    """Return model information."""
    if model_id != MODEL_ID:
        raise HTTPException(
            status_code=404,
            detail=f"Model '{model_id}' not found. Available model: {MODEL_ID}",
        )
    return ModelInfo(
        id=MODEL_ID,
        created=MODEL_CREATED,
        owned_by=MODEL_ID,
    )


def _create_sse_chunk(
    content: str,
    model: str,
    completion_id: str,
    finish_reason: str | None = None,
) -> str:
    """Create a Server-Sent Events formatted chunk for streaming responses."""
    chunk = {
        "id": completion_id,
        "object": "chat.completion.chunk",
        "created": int(time.time()),
        "model": model,
        "choices": [
            {
                "index": 0,
                "delta": {"content": content} if content else {},
                "finish_reason": finish_reason,
            }
        ],
    }
    return f"data: {json.dumps(chunk)}\n\n"


def _generate_streaming_response(
    answer: str,
    model: str,
    finish_reason: str = "stop",
) -> Generator[str, None, None]:
    """Generate SSE chunks for a finished run.

    The run completes before streaming starts, so the answer is sent as a
    single content chunk followed by the finish chunk.
    """
    completion_id = f"chatcmpl-{uuid.uuid4().hex[:12]}"

    yield _create_sse_chunk(answer, model, completion_id)
    yield _create_sse_chunk("", model, completion_id, finish_reason=finish_reason)
    yield "data: [DONE]\n\n"


def _error_response(result: RunError, execution_id: str) -> JSONResponse:
    """OpenAI-style error body; upstream failures are a bad gateway."""
    status_code = 500 if result.kind is ErrorKind.INTERNAL else 502
    body = ErrorResponse(
        error=ErrorDetail(
            message=f"[{execution_id}] {result.detail}",
            type="server_error" if status_code == 500 else "upstream_error",
            code=result.kind.value,
        )
    )
    return JSONResponse(status_code=status_code, content=body.model_dump())


def _split_request(request: ChatCompletionRequest) -> tuple[str, str | None]:
    """Return (task, system_instruction) from the chat messages."""
    user_messages = [msg for msg in request.messages if msg.role == "user"]
    if not user_messages:
        logger.warning("No user message found in request")
        raise HTTPException(
            status_code=400,
            detail="No user message found in the request.",
        )
    task = user_messages[-1].get_text_content()
    system_parts = [
        msg.get_text_content() for msg in request.messages if msg.role == "system"
    ]
    instruction = "\n\n".join(p for p in system_parts if p) or None
    return task, instruction


@router.post(
    "/v1/chat/completions",
    response_model=ChatCompletionResponse,
    responses={
        500: {"model": ErrorResponse, "description": "Internal server error"},
        502: {"model": ErrorResponse, "description": "Upstream model failure"},
    },
    summary="Create chat completion",
    description=(
        "Create a chat completion using the react-agent. "
        "The last user message is processed through the ReAct loop, "
        "using the registered tools to generate a response."
    ),
)
def create_chat_completion(
    request: ChatCompletionRequest,
) -> ChatCompletionResponse | StreamingResponse | JSONResponse:
    """Process a chat completion request through the orchestrator."""
    logger.debug("Received chat completion request: %s", request.model_dump_json())

    task, instruction = _split_request(request)

    try:
        execution_id, result = execute_run(
            task,
            system_instruction=instruction,
            max_steps=request.max_steps,
            trace_name="chat_completion",
            metadata={"model": request.model, "stream": request.stream},
        )
    except Exception as e:
        logger.exception("Chat completion failed: %s", e)
        raise HTTPException(status_code=500, detail=str(e))

    if isinstance(result, RunError):
        logger.error("[%s] Run failed (%s): %s", execution_id, result.kind.value, result.detail)
        return _error_response(result, execution_id)

    if isinstance(result, FinalAnswer):
        answer, finish_reason = result.content, "stop"
    else:
        assert isinstance(result, Exhausted)
        answer, finish_reason = _EXHAUSTED_MESSAGES[result.reason], "length"

    if request.stream:
        logger.debug("[%s] Returning streaming response", execution_id)
        return StreamingResponse(
            _generate_streaming_response(answer, MODEL_ID, finish_reason),
            media_type="text/event-stream",
        )

    # Rough token estimate; the run spans several upstream calls
    prompt_tokens = sum(
        len(msg.get_text_content().split()) * 2 for msg in request.messages
    )
    completion_tokens = len(answer.split()) * 2

    trace = None
    if request.include_trace:
        trace = [TraceStep(**step) for step in get_trace(result.conversation)]

    return ChatCompletionResponse(
        model=MODEL_ID,
        choices=[
            ChatCompletionChoice(
                index=0,
                message=ChatCompletionMessage(content=answer),
                finish_reason=finish_reason,
            )
        ],
        usage=UsageInfo(
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            total_tokens=prompt_tokens + completion_tokens,
        ),
        trace=trace,
    )
