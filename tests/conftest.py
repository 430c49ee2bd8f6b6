"""
Pytest configuration and fixtures for react-agent tests.
"""

import time
from typing import Any, Optional, Union

import pytest

from react_agent.llm_call import ModelReply
from react_agent.models import ToolCall
from react_agent.orchestration import RetryPolicy
from react_agent.tools.registry import ParameterSpec, ToolRegistry, ToolSpec
from react_agent.tracing import shutdown_tracing


def final(content: str) -> ModelReply:
    """A model reply with no tool calls."""
    return ModelReply(content=content, finish_reason="stop")


def tool_request(*calls: tuple, content: str = "") -> ModelReply:
    """A model reply requesting tools; each call is (id, name, arguments)."""
    return ModelReply(
        content=content,
        tool_calls=[ToolCall(id=i, name=n, arguments=a) for i, n, a in calls],
        finish_reason="tool_calls",
    )


class ScriptedModelClient:
    """
    Model client double that replays a script of replies and errors.

    Records a snapshot of the conversation and the arguments of every call.
    An exhausted script repeats its last entry.
    """

    model = "scripted-model"

    def __init__(self, script: list[Union[ModelReply, Exception]]):
        self.script = list(script)
        self.calls: list[dict[str, Any]] = []
        self.closed = False

    def complete(self, conversation, tools=None, timeout=None) -> ModelReply:
        self.calls.append(
            {
                "messages": conversation.messages,
                "tools": tools,
                "timeout": timeout,
            }
        )
        index = min(len(self.calls) - 1, len(self.script) - 1)
        entry = self.script[index]
        if isinstance(entry, Exception):
            raise entry
        return entry

    def close(self) -> None:
        self.closed = True

    @property
    def call_count(self) -> int:
        return len(self.calls)


def make_tool(
    name: str,
    handler,
    parameters: Optional[dict[str, ParameterSpec]] = None,
    description: str = "",
    formatter=None,
) -> ToolSpec:
    return ToolSpec(
        name=name,
        description=description or f"The {name} tool",
        parameters=parameters or {},
        handler=handler,
        formatter=formatter,
    )


def _weather(params: dict) -> dict:
    return {"location": params["location"], "temperature": 18, "conditions": "fog"}


def _slow(params: dict) -> str:
    time.sleep(params.get("seconds", 0.2))
    return "done"


def _broken(params: dict) -> str:
    raise RuntimeError("backend exploded")


@pytest.fixture
def registry() -> ToolRegistry:
    """Unfrozen registry with deterministic test tools."""
    return ToolRegistry(
        [
            make_tool(
                "get_weather",
                _weather,
                {"location": ParameterSpec("string", "City name")},
                description="Get the current weather for a location",
            ),
            make_tool(
                "echo",
                lambda p: p["text"],
                {"text": ParameterSpec("string")},
            ),
            make_tool(
                "slow",
                _slow,
                {"seconds": ParameterSpec("number", required=False)},
            ),
            make_tool("broken", _broken),
        ]
    )


@pytest.fixture(autouse=True)
def no_tracing():
    """Run every test with the global tracing client disabled."""
    shutdown_tracing()
    yield
    shutdown_tracing()


@pytest.fixture
def serve_script(monkeypatch, registry):
    """Install a scripted orchestrator as the API's shared orchestrator."""
    from react_agent.api import runner
    from react_agent.orchestration import Orchestrator

    def install(script: list[Union[ModelReply, Exception]], **kwargs) -> ScriptedModelClient:
        client = ScriptedModelClient(script)
        kwargs.setdefault("retry_policy", RetryPolicy(max_attempts=1))
        monkeypatch.setattr(runner, "_orchestrator", Orchestrator(client, registry, **kwargs))
        return client

    return install
