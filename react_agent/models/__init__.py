"""
Data models for react-agent.
"""

from .config import (
    ModelConfig,
    RetryConfig,
    AgentConfig,
    WeatherConfig,
    SearxngConfig,
    ToolsConfig,
    ServerConfig,
    LoggingConfig,
    LangfuseConfig,
    AppConfig,
)
from .conversation import Role, ToolCall, Message, Conversation, new_tool_call_id
from .results import (
    ErrorKind,
    ExhaustionReason,
    FinalAnswer,
    Exhausted,
    RunError,
    RunResult,
)

__all__ = [
    # Config models
    "ModelConfig",
    "RetryConfig",
    "AgentConfig",
    "WeatherConfig",
    "SearxngConfig",
    "ToolsConfig",
    "ServerConfig",
    "LoggingConfig",
    "LangfuseConfig",
    "AppConfig",
    # Conversation
    "Role",
    "ToolCall",
    "Message",
    "Conversation",
    "new_tool_call_id",
    # Results
    "ErrorKind",
    "ExhaustionReason",
    "FinalAnswer",
    "Exhausted",
    "RunError",
    "RunResult",
]
