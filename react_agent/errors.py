"""
Error taxonomy for the agent core.

Model client errors escalate to the orchestrator, which decides whether to
retry or terminate the run. Tool errors are never fatal: they are serialized
into the tool-result message so the model can react to them.
"""

from typing import Any, Optional


class AgentError(Exception):
    """Base class for all agent errors."""


# =============================================================================
# Model client errors
# =============================================================================


class ModelClientError(AgentError):
    """Failure talking to the upstream model endpoint."""

    retryable: bool = False


class UpstreamUnavailableError(ModelClientError):
    """Network/connection failure, timeout, or 5xx from the upstream."""

    retryable = True


class UpstreamRateLimitedError(ModelClientError):
    """The upstream asked us to slow down."""

    retryable = True

    def __init__(self, message: str, retry_after: Optional[float] = None):
        super().__init__(message)
        self.retry_after = retry_after


class UpstreamRejectedError(ModelClientError):
    """The upstream rejected the request (4xx other than rate limiting)."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class MalformedReplyError(ModelClientError):
    """The upstream response could not be parsed into a ModelReply."""


# =============================================================================
# Tool errors
# =============================================================================


class ToolError(AgentError):
    """A tool call failed. Serialized into conversation content, never raised to callers."""

    def __init__(self, tool_name: str, message: str):
        super().__init__(message)
        self.tool_name = tool_name
        self.message = message

    def to_payload(self) -> dict[str, Any]:
        """Structured representation embedded in the tool-result message."""
        return {
            "error": type(self).__name__,
            "tool": self.tool_name,
            "message": self.message,
        }


class UnknownToolError(ToolError):
    """The requested tool is not registered."""

    def __init__(self, tool_name: str):
        super().__init__(tool_name, f"Unknown tool '{tool_name}'")


class InvalidArgumentsError(ToolError):
    """Arguments do not match the tool's parameter schema."""

    def __init__(
        self,
        tool_name: str,
        missing: Optional[list[str]] = None,
        unexpected: Optional[list[str]] = None,
        mistyped: Optional[dict[str, str]] = None,
    ):
        self.missing = sorted(missing or [])
        self.unexpected = sorted(unexpected or [])
        self.mistyped = dict(sorted((mistyped or {}).items()))

        problems = []
        if self.missing:
            problems.append(f"missing: {', '.join(self.missing)}")
        if self.unexpected:
            problems.append(f"unexpected: {', '.join(self.unexpected)}")
        if self.mistyped:
            problems.append(
                "mistyped: "
                + ", ".join(f"{k} ({v})" for k, v in self.mistyped.items())
            )
        super().__init__(
            tool_name,
            f"Invalid arguments for '{tool_name}': {'; '.join(problems)}",
        )

    def to_payload(self) -> dict[str, Any]:
        payload = super().to_payload()
        payload.update(
            {
                "missing": self.missing,
                "unexpected": self.unexpected,
                "mistyped": self.mistyped,
            }
        )
        return payload


class ToolExecutionError(ToolError):
    """The tool's execution capability raised."""

    def __init__(self, tool_name: str, cause: BaseException):
        message = str(cause) or type(cause).__name__
        if len(message) > 500:
            message = message[:500] + "..."
        super().__init__(tool_name, f"Tool '{tool_name}' execution error: {message}")
        self.cause = cause


class ToolTimeoutError(ToolError):
    """The tool did not finish within the batch timeout."""

    def __init__(self, tool_name: str, timeout: float):
        super().__init__(
            tool_name, f"Tool '{tool_name}' timed out after {timeout:g}s"
        )
        self.timeout = timeout


# =============================================================================
# Registry / bookkeeping errors
# =============================================================================


class RegistryError(AgentError):
    """Misuse of the tool registry during setup."""


class DuplicateToolError(RegistryError):
    """A tool with the same name is already registered."""

    def __init__(self, tool_name: str):
        super().__init__(f"Tool '{tool_name}' is already registered")
        self.tool_name = tool_name


class RegistryFrozenError(RegistryError):
    """The registry no longer accepts registrations."""


class ConversationError(AgentError):
    """An append would break conversation invariants."""


class InvalidTransitionError(AgentError):
    """The run attempted a state transition not in the transition table."""


class BudgetExhaustedError(AgentError):
    """Names the exhausted outcome. Reported via ``Exhausted``, never raised to callers."""
