"""
react-agent - a ReAct reasoning-loop agent core

This package provides:
- Model client for OpenAI-compatible chat-completion endpoints
- Tool registry with argument validation, plus built-in tools
- Orchestrator state machine with step, time and cancellation budgets
- Interactive CLI and an OpenAI-compatible HTTP API
"""

from .llm_call import ModelClient, ModelReply
from .models import Conversation, Exhausted, FinalAnswer, Message, RunError, ToolCall
from .orchestration import CancellationToken, Orchestrator, RunEvent, RunState
from .orchestrator import build_orchestrator, run_task
from .tools import ParameterSpec, ToolRegistry, ToolSpec

__all__ = [
    "CancellationToken",
    "Conversation",
    "Exhausted",
    "FinalAnswer",
    "Message",
    "ModelClient",
    "ModelReply",
    "Orchestrator",
    "ParameterSpec",
    "RunError",
    "RunEvent",
    "RunState",
    "ToolCall",
    "ToolRegistry",
    "ToolSpec",
    "build_orchestrator",
    "run_task",
]

__version__ = "0.1.0"
