"""
Tool definitions for the orchestration loop.

Converts ToolRegistry entries into OpenAI-style JSON function-tool
definitions passed to the upstream in the ``tools`` request field.
"""

import logging
from typing import Optional

from ..tools.registry import ToolRegistry, ToolSpec

logger = logging.getLogger(__name__)


def build_tool_definition(spec: ToolSpec) -> dict:
    """Build the OpenAI function-calling descriptor for one tool."""
    return {
        "type": "function",
        "function": {
            "name": spec.name,
            "description": spec.description,
            "parameters": spec.to_json_schema(),
        },
    }


def build_tool_definitions(
    registry: ToolRegistry,
    exclude_tools: Optional[set[str]] = None,
) -> list[dict]:
    """
    Build OpenAI function-calling tool definitions from the registry.

    Args:
        registry: Registry to describe.
        exclude_tools: Tool names to leave out.

    Returns:
        List of OpenAI-format tool definitions, in registration order.
    """
    exclude = exclude_tools or set()
    tools: list[dict] = []
    for name, spec in registry.all_tools().items():
        if name in exclude:
            logger.debug("Excluding tool '%s'", name)
            continue
        tools.append(build_tool_definition(spec))
    return tools
