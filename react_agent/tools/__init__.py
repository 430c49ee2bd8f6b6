"""
react-agent Tools Package

Available tools:
- get_weather: Current weather via an HTTP weather service
- web_search: Web search via SearXNG
- calculate: Mathematical expression evaluation
"""

import logging
from typing import Optional

from ..models import AppConfig
from . import math_solver, search, weather
from .registry import ParameterSpec, ToolRegistry, ToolSpec

logger = logging.getLogger(__name__)


def build_default_registry(
    app_config: Optional[AppConfig] = None,
    enabled: Optional[list[str]] = None,
) -> ToolRegistry:
    """
    Build a registry with the built-in tools, endpoints taken from config.

    Args:
        app_config: Application configuration (defaults used if None)
        enabled: Tool names to register; defaults to ``tools.enabled`` from config

    Returns:
        An unfrozen ToolRegistry; callers may register more tools before use.
    """
    app_config = app_config or AppConfig()
    names = enabled if enabled is not None else app_config.tools.enabled

    builders = {
        "get_weather": lambda: weather.build_tool(app_config.tools.weather),
        "web_search": lambda: search.build_tool(app_config.tools.searxng),
        "calculate": math_solver.build_tool,
    }

    registry = ToolRegistry()
    for name in names:
        builder = builders.get(name)
        if builder is None:
            logger.warning("Unknown built-in tool '%s' in configuration, skipping", name)
            continue
        registry.register(builder())
    return registry


__all__ = [
    "ParameterSpec",
    "ToolRegistry",
    "ToolSpec",
    "build_default_registry",
]
