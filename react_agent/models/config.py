"""
Configuration models for react-agent.

Defines dataclasses for the YAML configuration file and the
environment-variable configuration.
"""

from dataclasses import dataclass, field
from typing import Optional


@dataclass
class ModelConfig:
    """Configuration for the upstream chat-completion endpoint."""
    base_url: str = "http://localhost:8001/v1"
    model: str = "gpt-4o-mini"
    api_key: str = "not-needed"
    temperature: float = 0.2
    max_tokens: Optional[int] = None
    request_timeout: float = 60.0


@dataclass
class RetryConfig:
    """Bounded retry for transient upstream failures."""
    max_attempts: int = 3
    backoff_base: float = 0.5
    backoff_max: float = 8.0


@dataclass
class AgentConfig:
    """Budgets and defaults for the reasoning loop."""
    max_steps: int = 10
    run_timeout: Optional[float] = 300.0
    tool_timeout: Optional[float] = 30.0
    max_tool_workers: int = 4
    system_instruction: str = ""
    retry: RetryConfig = field(default_factory=RetryConfig)


@dataclass
class WeatherConfig:
    """Configuration for the weather lookup tool."""
    url: str = "http://localhost:8090/weather"
    api_key: str = ""
    timeout: int = 10


@dataclass
class SearxngConfig:
    """Configuration for the SearXNG search tool."""
    url: str = "http://localhost:8080/search"
    timeout: int = 30


@dataclass
class ToolsConfig:
    """Configuration for tool endpoints."""
    weather: WeatherConfig = field(default_factory=WeatherConfig)
    searxng: SearxngConfig = field(default_factory=SearxngConfig)
    enabled: list[str] = field(
        default_factory=lambda: ["get_weather", "web_search", "calculate"]
    )


@dataclass
class ServerConfig:
    """Configuration for the FastAPI server."""
    host: str = "0.0.0.0"
    port: int = 8000
    workers: int = 1
    reload: bool = False


@dataclass
class LoggingConfig:
    """Configuration for logging."""
    level: str = "INFO"


@dataclass
class LangfuseConfig:
    """Configuration for Langfuse observability.

    Tracing auto-enables when both public_key and secret_key are provided.
    """
    public_key: str = ""
    secret_key: str = ""
    host: str = ""
    debug: bool = False

    @property
    def enabled(self) -> bool:
        """Auto-enable when both keys are configured."""
        return bool(self.public_key and self.secret_key)


@dataclass
class AppConfig:
    """
    Unified application configuration container.

    Holds all configuration sections loaded from the YAML file or
    the environment.
    """
    version: str = "1.0"
    model: ModelConfig = field(default_factory=ModelConfig)
    agent: AgentConfig = field(default_factory=AgentConfig)
    tools: ToolsConfig = field(default_factory=ToolsConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    langfuse: LangfuseConfig = field(default_factory=LangfuseConfig)

    @property
    def log_level(self) -> str:
        """Shortcut for logging.level."""
        return self.logging.level
