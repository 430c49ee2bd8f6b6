"""
Configuration loader for react-agent.

Loads configuration from YAML files with support for
environment variable interpolation.
"""

import logging
import os
import re
from pathlib import Path
from typing import Any, Optional

import yaml

from .models import (
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

logger = logging.getLogger(__name__)

# Default config path relative to project root
DEFAULT_CONFIG_PATH = Path(__file__).parent.parent / "config" / "config.yaml"

# Regex for environment variable interpolation: ${VAR} or ${VAR:-default}
ENV_VAR_PATTERN = re.compile(r"\$\{([^}:]+)(?::-([^}]*))?\}")

# Singleton cache for app config
_app_config: Optional[AppConfig] = None


def resolve_env_vars(value: str) -> str:
    """
    Resolve environment variable references in a string.

    Supports ${VAR} and ${VAR:-default} syntax.

    Args:
        value: String potentially containing env var references

    Returns:
        String with env vars resolved
    """

    def replace_match(match: re.Match) -> str:
        var_name = match.group(1)
        default_value = match.group(2) if match.group(2) is not None else ""
        return os.environ.get(var_name, default_value)

    return ENV_VAR_PATTERN.sub(replace_match, value)


def _substitute_env_vars_recursive(data: Any) -> Any:
    """
    Recursively substitute environment variables in a data structure.

    Args:
        data: Any data structure (dict, list, str, etc.)

    Returns:
        Data structure with env vars resolved
    """
    if isinstance(data, dict):
        return {k: _substitute_env_vars_recursive(v) for k, v in data.items()}
    elif isinstance(data, list):
        return [_substitute_env_vars_recursive(item) for item in data]
    elif isinstance(data, str):
        return resolve_env_vars(data)
    return data


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.lower() == "true"
    return bool(value)


def _as_optional_float(value: Any) -> Optional[float]:
    """Parse a float where empty/None/0 means 'no limit'."""
    if value is None or value == "":
        return None
    parsed = float(value)
    return parsed if parsed > 0 else None


def _parse_model_config(data: dict) -> ModelConfig:
    """Parse upstream model configuration from dict."""
    max_tokens = data.get("max_tokens")
    return ModelConfig(
        base_url=data.get("base_url", ModelConfig.base_url),
        model=data.get("model", ModelConfig.model),
        api_key=data.get("api_key") or ModelConfig.api_key,
        temperature=float(data.get("temperature", ModelConfig.temperature)),
        max_tokens=int(max_tokens) if max_tokens not in (None, "") else None,
        request_timeout=float(data.get("request_timeout", ModelConfig.request_timeout)),
    )


def _parse_retry_config(data: dict) -> RetryConfig:
    """Parse retry configuration from dict."""
    return RetryConfig(
        max_attempts=int(data.get("max_attempts", RetryConfig.max_attempts)),
        backoff_base=float(data.get("backoff_base", RetryConfig.backoff_base)),
        backoff_max=float(data.get("backoff_max", RetryConfig.backoff_max)),
    )


def _parse_agent_config(data: dict) -> AgentConfig:
    """Parse reasoning-loop configuration from dict."""
    return AgentConfig(
        max_steps=int(data.get("max_steps", AgentConfig.max_steps)),
        run_timeout=_as_optional_float(data.get("run_timeout", AgentConfig.run_timeout)),
        tool_timeout=_as_optional_float(
            data.get("tool_timeout", AgentConfig.tool_timeout)
        ),
        max_tool_workers=int(data.get("max_tool_workers", AgentConfig.max_tool_workers)),
        system_instruction=data.get("system_instruction", "") or "",
        retry=_parse_retry_config(data.get("retry", {})),
    )


def _parse_tools_config(data: dict) -> ToolsConfig:
    """Parse tools configuration from dict."""
    weather_data = data.get("weather", {})
    searxng_data = data.get("searxng", {})

    tools_config = ToolsConfig(
        weather=WeatherConfig(
            url=weather_data.get("url", WeatherConfig.url),
            api_key=weather_data.get("api_key", ""),
            timeout=int(weather_data.get("timeout", WeatherConfig.timeout)),
        ),
        searxng=SearxngConfig(
            url=searxng_data.get("url", SearxngConfig.url),
            timeout=int(searxng_data.get("timeout", SearxngConfig.timeout)),
        ),
    )
    if "enabled" in data:
        tools_config.enabled = list(data["enabled"] or [])
    return tools_config


def _parse_server_config(data: dict) -> ServerConfig:
    """Parse server configuration from dict."""
    return ServerConfig(
        host=data.get("host", "0.0.0.0"),
        port=int(data.get("port", 8000)),
        workers=int(data.get("workers", 1)),
        reload=_as_bool(data.get("reload", False)),
    )


def _parse_logging_config(data: dict) -> LoggingConfig:
    """Parse logging configuration from dict."""
    return LoggingConfig(
        level=data.get("level", "INFO"),
    )


def _parse_langfuse_config(data: dict) -> LangfuseConfig:
    """Parse Langfuse configuration from dict."""
    return LangfuseConfig(
        public_key=data.get("public_key", ""),
        secret_key=data.get("secret_key", ""),
        host=data.get("host", ""),
        debug=_as_bool(data.get("debug", False)),
    )


def parse_app_config(raw_config: dict) -> AppConfig:
    """
    Build an AppConfig from an already-loaded mapping.

    Environment variables are substituted before parsing.
    """
    raw_config = _substitute_env_vars_recursive(raw_config)

    return AppConfig(
        version=str(raw_config.get("version", "1.0")),
        model=_parse_model_config(raw_config.get("model", {})),
        agent=_parse_agent_config(raw_config.get("agent", {})),
        tools=_parse_tools_config(raw_config.get("tools", {})),
        server=_parse_server_config(raw_config.get("server", {})),
        logging=_parse_logging_config(raw_config.get("logging", {})),
        langfuse=_parse_langfuse_config(raw_config.get("langfuse", {})),
    )


def validate_app_config(config: AppConfig) -> list[str]:
    """
    Validate an application configuration.

    Args:
        config: Configuration to validate

    Returns:
        List of validation error messages (empty if valid)
    """
    errors = []

    if not config.model.base_url:
        errors.append("model.base_url is required")
    if not config.model.model:
        errors.append("model.model is required")
    if config.agent.max_steps <= 0:
        errors.append("agent.max_steps must be positive")
    if config.agent.max_tool_workers <= 0:
        errors.append("agent.max_tool_workers must be positive")
    if config.agent.retry.max_attempts <= 0:
        errors.append("agent.retry.max_attempts must be positive")

    return errors


def load_app_config(path: Optional[str] = None, reload: bool = False) -> AppConfig:
    """
    Load unified application configuration from a YAML file.

    Uses a singleton pattern - subsequent calls return the cached config
    unless reload=True is specified.

    Args:
        path: Path to the YAML configuration file. If None, uses
              CONFIG_PATH env var or the default path (config/config.yaml).
        reload: If True, force reload from disk instead of using cache.

    Returns:
        AppConfig with all configuration loaded

    Raises:
        FileNotFoundError: If the config file doesn't exist
        ValueError: If the config is invalid
    """
    global _app_config

    if _app_config is not None and not reload:
        return _app_config

    if path is None:
        path = os.environ.get("CONFIG_PATH", str(DEFAULT_CONFIG_PATH))

    config_path = Path(path)

    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found at {config_path}. "
            f"Create one from config/config.yaml.example or set CONFIG_PATH env var."
        )

    logger.info("Loading configuration from %s", config_path)

    with open(config_path, "r") as f:
        raw_config = yaml.safe_load(f)

    if raw_config is None:
        raise ValueError(f"Configuration file {config_path} is empty")

    app_config = parse_app_config(raw_config)

    for error in validate_app_config(app_config):
        logger.warning("Config validation warning: %s", error)

    _app_config = app_config

    logger.debug(
        "Configuration loaded: version=%s, model=%s, tools=%s",
        app_config.version,
        app_config.model.model,
        app_config.tools.enabled,
    )

    return app_config


def reset_config_cache() -> None:
    """Reset the configuration cache, forcing a reload on next access."""
    global _app_config
    _app_config = None
    logger.debug("Configuration cache reset")
