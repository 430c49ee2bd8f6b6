"""
react-agent entry points.

Wires configuration, the model client, the built-in tool registry and the
Orchestrator together, and renders run traces for the CLI and the API.
"""

import json
import logging
import uuid
from typing import Optional

from .config import config as env_config
from .llm_call import ModelClient
from .models import AppConfig, Conversation, Role, RunResult
from .orchestration import Orchestrator, RetryPolicy
from .tools import ToolRegistry, build_default_registry
from .tracing import TracingContext

logger = logging.getLogger(__name__)


def build_orchestrator(
    app_config: Optional[AppConfig] = None,
    registry: Optional[ToolRegistry] = None,
    model_client=None,
) -> Orchestrator:
    """
    Build an Orchestrator from configuration.

    Args:
        app_config: Application configuration (defaults to the environment config)
        registry: Tool registry; the built-in tools are registered if None
        model_client: Model client; a ModelClient for ``app_config.model`` if None

    Returns:
        A ready Orchestrator. Its registry is frozen.
    """
    app_config = app_config or env_config
    agent = app_config.agent

    if registry is None:
        registry = build_default_registry(app_config)
    if model_client is None:
        model_client = ModelClient(app_config.model)

    logger.debug(
        "Building orchestrator: model=%s tools=%s max_steps=%d",
        getattr(model_client, "model", "unknown"),
        registry.names(),
        agent.max_steps,
    )
    return Orchestrator(
        model_client=model_client,
        registry=registry,
        max_steps=agent.max_steps,
        model_timeout=app_config.model.request_timeout,
        run_timeout=agent.run_timeout,
        tool_timeout=agent.tool_timeout,
        max_tool_workers=agent.max_tool_workers,
        retry_policy=RetryPolicy.from_config(agent.retry),
        system_instruction=agent.system_instruction or None,
    )


def run_task(
    task: str,
    system_instruction: Optional[str] = None,
    max_steps: Optional[int] = None,
    app_config: Optional[AppConfig] = None,
) -> RunResult:
    """
    Convenience function to run a single task with a fresh orchestrator.

    Args:
        task: The user's question or task
        system_instruction: Optional system message for this run
        max_steps: Optional step budget override
        app_config: Application configuration (defaults to the environment config)

    Returns:
        The run result
    """
    orchestrator = build_orchestrator(app_config)
    execution_id = f"run-{uuid.uuid4().hex[:8]}"
    tracing_context = TracingContext(execution_id=execution_id)
    tracing_context.start_trace(name="agent_run", task=task)
    try:
        result = orchestrator.run(
            task,
            system_instruction=system_instruction,
            max_steps=max_steps,
            execution_id=execution_id,
            tracing_context=tracing_context,
        )
        tracing_context.end_trace(
            output=result.to_dict(include_conversation=False),
            status="success" if result.status == "answer" else result.status,
        )
        return result
    finally:
        orchestrator.close()


def get_trace(conversation: Optional[Conversation]) -> list[dict]:
    """
    Summarize a run's conversation as one entry per model step.

    Each entry holds the step number, the tool calls requested (with their
    results) and, for the last step of a successful run, the final answer.
    """
    if conversation is None:
        return []

    results = {m.tool_call_id: m.content for m in conversation if m.role is Role.TOOL}
    trace: list[dict] = []
    for message in conversation:
        if message.role is not Role.ASSISTANT:
            continue
        trace.append(
            {
                "step": len(trace) + 1,
                "tool_calls": [
                    {
                        "id": tc.id,
                        "name": tc.name,
                        "arguments": tc.arguments,
                        "result": results.get(tc.id),
                    }
                    for tc in message.tool_calls
                ],
                "is_final": not message.tool_calls,
                "final_answer": message.content if not message.tool_calls else None,
            }
        )
    return trace


def format_trace(conversation: Optional[Conversation]) -> str:
    """Render a trace for terminal display."""
    trace = get_trace(conversation)
    if not trace:
        return "No trace available. Run a task first."

    lines = ["═" * 70, "RUN TRACE", "═" * 70]
    for step in trace:
        lines.append("")
        lines.append(f"┌─ Step {step['step']}" + ("  [FINAL]" if step["is_final"] else ""))
        for call in step["tool_calls"]:
            lines.append(f"│  Action: {call['name']}")
            lines.append(f"│  Input: {json.dumps(call['arguments'])}")
            observation = call["result"] or ""
            if len(observation) > 200:
                observation = observation[:200] + "..."
            lines.append(f"│  Observation: {observation}")
        if step["final_answer"]:
            lines.append(f"│  Final Answer: {step['final_answer']}")
        lines.append("└" + "─" * 68)
    return "\n".join(lines)
