"""
Configuration management for react-agent.

Loads configuration from environment variables with sensible defaults
for local development. When CONFIG_PATH points at a YAML file, that file
is used instead (see config_loader).
"""

import os

from dotenv import load_dotenv

from .config_loader import load_app_config
from .models import (
    AppConfig,
    ModelConfig,
    RetryConfig,
    AgentConfig,
    WeatherConfig,
    SearxngConfig,
    ToolsConfig,
    ServerConfig,
    LoggingConfig,
    LangfuseConfig,
)

load_dotenv()


def _optional_float(name: str, default: str) -> float | None:
    value = os.getenv(name, default)
    if not value:
        return None
    parsed = float(value)
    return parsed if parsed > 0 else None


def config_from_env() -> AppConfig:
    """Build the application configuration from environment variables."""
    max_tokens = os.getenv("MODEL_MAX_TOKENS", "")
    enabled_tools = os.getenv("ENABLED_TOOLS", "get_weather,web_search,calculate")

    return AppConfig(
        model=ModelConfig(
            base_url=os.getenv("MODEL_BASE_URL", "http://localhost:8001/v1"),
            model=os.getenv("MODEL_NAME", "gpt-4o-mini"),
            api_key=os.getenv("MODEL_API_KEY", "not-needed"),
            temperature=float(os.getenv("MODEL_TEMPERATURE", "0.2")),
            max_tokens=int(max_tokens) if max_tokens else None,
            request_timeout=float(os.getenv("MODEL_REQUEST_TIMEOUT", "60")),
        ),
        agent=AgentConfig(
            max_steps=int(os.getenv("MAX_AGENT_STEPS", "10")),
            run_timeout=_optional_float("RUN_TIMEOUT", "300"),
            tool_timeout=_optional_float("TOOL_TIMEOUT", "30"),
            max_tool_workers=int(os.getenv("MAX_TOOL_WORKERS", "4")),
            system_instruction=os.getenv("SYSTEM_INSTRUCTION", ""),
            retry=RetryConfig(
                max_attempts=int(os.getenv("MODEL_RETRY_ATTEMPTS", "3")),
                backoff_base=float(os.getenv("MODEL_RETRY_BACKOFF", "0.5")),
                backoff_max=float(os.getenv("MODEL_RETRY_BACKOFF_MAX", "8")),
            ),
        ),
        tools=ToolsConfig(
            weather=WeatherConfig(
                url=os.getenv("WEATHER_ENDPOINT", "http://localhost:8090/weather"),
                api_key=os.getenv("WEATHER_API_KEY", ""),
                timeout=int(os.getenv("WEATHER_TIMEOUT", "10")),
            ),
            searxng=SearxngConfig(
                url=os.getenv("SEARXNG_ENDPOINT", "http://localhost:8080/search"),
                timeout=int(os.getenv("SEARXNG_TIMEOUT", "30")),
            ),
            enabled=[t.strip() for t in enabled_tools.split(",") if t.strip()],
        ),
        server=ServerConfig(
            host=os.getenv("SERVER_HOST", "0.0.0.0"),
            port=int(os.getenv("SERVER_PORT", "8000")),
            workers=int(os.getenv("SERVER_WORKERS", "1")),
            reload=os.getenv("SERVER_RELOAD", "false").lower() == "true",
        ),
        logging=LoggingConfig(level=os.getenv("LOG_LEVEL", "INFO")),
        langfuse=LangfuseConfig(
            public_key=os.getenv("LANGFUSE_PUBLIC_KEY", ""),
            secret_key=os.getenv("LANGFUSE_SECRET_KEY", ""),
            host=os.getenv("LANGFUSE_HOST", ""),
            debug=os.getenv("LANGFUSE_DEBUG", "false").lower() == "true",
        ),
    )


def get_config() -> AppConfig:
    """Get the application configuration."""
    config_path = os.getenv("CONFIG_PATH")
    if config_path:
        return load_app_config(config_path)
    return config_from_env()


# Global config instance
config = get_config()
