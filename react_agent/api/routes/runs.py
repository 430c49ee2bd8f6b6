"""
Native run endpoints.

/v1/runs executes one task and returns the full RunResult; /v1/tools lists
the tools offered to the model.
"""

import logging

from fastapi import APIRouter, HTTPException

from ..runner import execute_run, get_orchestrator
from ..schemas import ErrorResponse, RunRequest, RunResponse, ToolInfo, ToolListResponse

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get(
    "/v1/tools",
    response_model=ToolListResponse,
    summary="List tools",
    description="List the tools registered with the agent, with their parameter schemas.",
)
def list_tools() -> ToolListResponse:
    """Return the registered tool descriptors."""
    definitions = get_orchestrator().tool_definitions
    return ToolListResponse(
        data=[
            ToolInfo(
                name=d["function"]["name"],
                description=d["function"]["description"],
                parameters=d["function"]["parameters"],
            )
            for d in definitions
        ]
    )


@router.post(
    "/v1/runs",
    response_model=RunResponse,
    responses={
        500: {"model": ErrorResponse, "description": "Internal server error"},
    },
    summary="Run a task",
    description=(
        "Run a task through the ReAct loop. The response status is 'answer', "
        "'exhausted' (step or time budget) or 'error' (upstream failure)."
    ),
)
def create_run(request: RunRequest) -> RunResponse:
    """Execute a run and return its result."""
    try:
        execution_id, result = execute_run(
            request.task,
            system_instruction=request.system_instruction,
            max_steps=request.max_steps,
            trace_name="run",
        )
    except Exception as e:
        logger.exception("Run failed: %s", e)
        raise HTTPException(status_code=500, detail=str(e))

    return RunResponse(id=execution_id, **result.to_dict())
