"""
Tool Registry - Single source of truth for tool definitions.

Tools are declared explicitly (name, description, parameter schema,
handler, optional formatter). The registry validates arguments against
the declared schema before dispatching to the handler. Once frozen it is
read-only and safe to share between concurrent runs.
"""

import json
import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, Mapping, Optional

from ..errors import (
    DuplicateToolError,
    InvalidArgumentsError,
    RegistryFrozenError,
    ToolExecutionError,
    UnknownToolError,
)

logger = logging.getLogger(__name__)

# JSON-schema type name -> accepted Python types
PARAMETER_TYPES: dict[str, tuple[type, ...]] = {
    "string": (str,),
    "integer": (int,),
    "number": (int, float),
    "boolean": (bool,),
    "object": (dict,),
    "array": (list, tuple),
}


@dataclass(frozen=True)
class ParameterSpec:
    """A single named parameter of a tool."""

    type: str
    description: str = ""
    required: bool = True
    enum: Optional[tuple] = None

    def __post_init__(self):
        if self.type not in PARAMETER_TYPES:
            raise ValueError(
                f"Unsupported parameter type '{self.type}'. "
                f"Expected one of: {', '.join(PARAMETER_TYPES)}"
            )
        if self.enum is not None and not isinstance(self.enum, tuple):
            object.__setattr__(self, "enum", tuple(self.enum))

    def type_matches(self, value: Any) -> bool:
        # bool is an int subclass; never let True pass as a number
        if isinstance(value, bool) and self.type != "boolean":
            return False
        return isinstance(value, PARAMETER_TYPES[self.type])

    def accepts(self, value: Any) -> bool:
        """Check the value's type and enum membership, if declared."""
        if not self.type_matches(value):
            return False
        return self.enum is None or value in self.enum

    def to_json_schema(self) -> dict:
        schema: dict[str, Any] = {"type": self.type}
        if self.description:
            schema["description"] = self.description
        if self.enum is not None:
            schema["enum"] = list(self.enum)
        return schema


@dataclass(frozen=True)
class ToolSpec:
    """Metadata for a tool - defined once, used everywhere."""

    name: str
    description: str
    parameters: Mapping[str, ParameterSpec]
    handler: Callable[[dict], Any]
    formatter: Optional[Callable[[Any], str]] = field(default=None)

    def __post_init__(self):
        if not self.name:
            raise ValueError("Tool name must be non-empty")
        object.__setattr__(self, "parameters", MappingProxyType(dict(self.parameters)))

    @property
    def required_parameters(self) -> list[str]:
        return [name for name, p in self.parameters.items() if p.required]

    def to_json_schema(self) -> dict:
        """JSON-schema object describing the tool's parameters."""
        return {
            "type": "object",
            "properties": {
                name: param.to_json_schema() for name, param in self.parameters.items()
            },
            "required": self.required_parameters,
        }


class ToolRegistry:
    """Registry of tools by name."""

    def __init__(self, tools: Optional[list[ToolSpec]] = None):
        self._tools: dict[str, ToolSpec] = {}
        self._frozen = False
        for spec in tools or []:
            self.register(spec)

    def register(self, spec: ToolSpec) -> ToolSpec:
        """Register a tool. Names must be unique."""
        if self._frozen:
            raise RegistryFrozenError(
                f"Cannot register '{spec.name}': registry is frozen"
            )
        if spec.name in self._tools:
            raise DuplicateToolError(spec.name)
        self._tools[spec.name] = spec
        logger.debug("Registered tool: %s", spec.name)
        return spec

    def freeze(self) -> "ToolRegistry":
        """Make the registry read-only. Idempotent."""
        if not self._frozen:
            self._tools = MappingProxyType(dict(self._tools))  # type: ignore[assignment]
            self._frozen = True
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen

    def resolve(self, name: str) -> ToolSpec:
        """Get a tool by name."""
        spec = self._tools.get(name)
        if spec is None:
            raise UnknownToolError(name)
        return spec

    def get(self, name: str) -> Optional[ToolSpec]:
        """Get a tool by name, or None."""
        return self._tools.get(name)

    def validate(self, name: str, args: Any) -> dict:
        """
        Validate an argument bag against the tool's parameter schema.

        Returns:
            The validated arguments.

        Raises:
            UnknownToolError: If the tool is not registered.
            InvalidArgumentsError: Listing missing, unexpected and mistyped fields.
        """
        spec = self.resolve(name)
        if not isinstance(args, dict):
            raise InvalidArgumentsError(
                name, mistyped={"<arguments>": f"expected object, got {type(args).__name__}"}
            )

        missing = [p for p in spec.required_parameters if p not in args]
        unexpected = [k for k in args if k not in spec.parameters]
        mistyped: dict[str, str] = {}
        for key, value in args.items():
            param = spec.parameters.get(key)
            if param is None or param.accepts(value):
                continue
            if param.type_matches(value):
                mistyped[key] = f"expected one of {list(param.enum or ())}"
            else:
                mistyped[key] = f"expected {param.type}, got {type(value).__name__}"

        if missing or unexpected or mistyped:
            raise InvalidArgumentsError(
                name, missing=missing, unexpected=unexpected, mistyped=mistyped
            )
        return dict(args)

    def invoke(self, name: str, args: Any) -> Any:
        """
        Validate arguments and execute the tool.

        Returns:
            The raw value returned by the tool handler.

        Raises:
            UnknownToolError, InvalidArgumentsError, ToolExecutionError
        """
        spec = self.resolve(name)
        validated = self.validate(name, args)
        try:
            return spec.handler(validated)
        except Exception as e:
            raise ToolExecutionError(name, e) from e

    def format_result(self, name: str, value: Any) -> str:
        """Render a tool result as conversation content."""
        spec = self.get(name)
        if spec is not None and spec.formatter is not None:
            return spec.formatter(value)
        if isinstance(value, str):
            return value
        return json.dumps(value, default=str)

    def names(self) -> list[str]:
        return list(self._tools)

    def all_tools(self) -> dict[str, ToolSpec]:
        """Get a copy of all registered tools."""
        return dict(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def __repr__(self) -> str:
        return f"ToolRegistry(tools={self.names()}, frozen={self._frozen})"
