"""
Schema-validated tool registry.

Tools declare their inputs in a compact ordered form::

    {
        "path": {"type": "string", "required": True, "description": "..."},
        "recursive": {"type": "boolean", "default": False},
    }

which is compiled to JSON Schema (Draft 7) for validation and for the
``tools/list`` catalog. Input is validated before the handler runs, declared
defaults are filled in, and anything the handler raises comes back as a
ToolFailure instead of propagating into the transport.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
import copy
from dataclasses import dataclass, field
import logging
from typing import Any

from jsonschema import Draft7Validator
from jsonschema.exceptions import ValidationError as SchemaError
from mcp.types import CallToolResult, TextContent, Tool

from workspace_mcp.errors import (
    DuplicateToolNameError,
    GatewayError,
    ToolValidationError,
    UnknownToolError,
)

logger = logging.getLogger(__name__)

_SCHEMA_KEYS = ("type", "description", "items", "enum", "minimum", "maximum", "default")


# =============================================================================
# Results
# =============================================================================


@dataclass
class ToolSuccess:
    """Handler output as one or more text blocks."""

    content: list[TextContent]

    @property
    def is_error(self) -> bool:
        return False

    @property
    def text(self) -> str:
        return "\n".join(block.text for block in self.content)


@dataclass
class ToolFailure:
    """A tool-level failure reported back to the caller as data."""

    message: str
    code: str = "TOOL_ERROR"

    @property
    def is_error(self) -> bool:
        return True

    @property
    def text(self) -> str:
        return self.message


ToolResult = ToolSuccess | ToolFailure
ToolHandler = Callable[[dict[str, Any]], Awaitable[ToolResult]]


def text_result(*texts: str) -> ToolSuccess:
    """Build a success result from plain strings."""
    return ToolSuccess(content=[TextContent(type="text", text=t) for t in texts])


def to_call_tool_result(result: ToolResult) -> CallToolResult:
    """Convert a registry result into the MCP wire type."""
    if isinstance(result, ToolFailure):
        return CallToolResult(
            content=[TextContent(type="text", text=result.message)],
            isError=True,
        )
    return CallToolResult(content=list(result.content), isError=False)


# =============================================================================
# Schema compilation
# =============================================================================


def compile_schema(params: dict[str, dict[str, Any]]) -> dict[str, Any]:
    """Compile the compact parameter format to a strict JSON Schema object."""
    properties: dict[str, Any] = {}
    required: list[str] = []

    for name, spec in params.items():
        properties[name] = {k: spec[k] for k in _SCHEMA_KEYS if k in spec}
        if spec.get("required", False):
            required.append(name)

    schema: dict[str, Any] = {
        "type": "object",
        "properties": properties,
        "additionalProperties": False,
    }
    if required:
        schema["required"] = required
    return schema


def _describe(error: SchemaError) -> str:
    """Turn a jsonschema error into a field-level message."""
    location = ".".join(str(p) for p in error.absolute_path)

    if error.validator == "required":
        missing = error.message.split("'")[1] if "'" in error.message else error.message
        return f"Missing required field: {missing}"
    if error.validator == "additionalProperties":
        extra = sorted(set(error.instance) - set(error.schema.get("properties", {})))
        return f"Unexpected field(s): {', '.join(extra)}"
    if error.validator == "type":
        expected = error.validator_value
        if isinstance(expected, list):
            expected = " or ".join(expected)
        got = type(error.instance).__name__
        return f"Field '{location}': expected {expected}, got {got}"
    if error.validator == "minimum":
        return f"Field '{location}': {error.instance!r} is below the minimum of {error.validator_value}"
    if error.validator == "maximum":
        return f"Field '{location}': {error.instance!r} is above the maximum of {error.validator_value}"
    if error.validator == "enum":
        allowed = ", ".join(repr(v) for v in error.validator_value)
        return f"Field '{location}': {error.instance!r} is not one of {allowed}"
    if location:
        return f"Field '{location}': {error.message}"
    return error.message


# =============================================================================
# Registry
# =============================================================================


@dataclass
class ToolDefinition:
    name: str
    description: str
    params: dict[str, dict[str, Any]]
    handler: ToolHandler
    group: str = "core"
    input_schema: dict[str, Any] = field(init=False)
    validator: Draft7Validator = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self.input_schema = compile_schema(self.params)
        Draft7Validator.check_schema(self.input_schema)
        self.validator = Draft7Validator(self.input_schema)

    def as_mcp_tool(self) -> Tool:
        return Tool(name=self.name, description=self.description, inputSchema=self.input_schema)

    def validate(self, raw: Any) -> dict[str, Any]:
        """
        Validate raw input and apply defaults.

        Raises:
            ToolValidationError: listing every field-level mismatch
        """
        if raw is None:
            raw = {}
        if not isinstance(raw, dict):
            raise ToolValidationError(
                f"Invalid input for {self.name}: expected an object, got {type(raw).__name__}"
            )

        errors = sorted(self.validator.iter_errors(raw), key=lambda e: list(e.absolute_path))
        if errors:
            details = "; ".join(_describe(e) for e in errors)
            raise ToolValidationError(f"Invalid input for {self.name}: {details}")

        args = dict(raw)
        for name, spec in self.params.items():
            if name not in args and "default" in spec:
                args[name] = copy.deepcopy(spec["default"])
        return args


class ToolRegistry:
    """Maps tool names to validated handlers."""

    def __init__(self):
        self._tools: dict[str, ToolDefinition] = {}

    def register(
        self,
        name: str,
        description: str,
        params: dict[str, dict[str, Any]],
        handler: ToolHandler,
        group: str = "core",
    ) -> ToolDefinition:
        """
        Register a tool.

        Raises:
            DuplicateToolNameError: a tool with this name already exists
        """
        if name in self._tools:
            raise DuplicateToolNameError(f"Tool already registered: {name}")
        tool = ToolDefinition(
            name=name, description=description, params=params, handler=handler, group=group
        )
        self._tools[name] = tool
        logger.debug(f"Registered tool {name} ({group})")
        return tool

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def get(self, name: str) -> ToolDefinition | None:
        return self._tools.get(name)

    def names(self) -> list[str]:
        return list(self._tools)

    def list_tools(self) -> list[Tool]:
        return [tool.as_mcp_tool() for tool in self._tools.values()]

    async def invoke(self, name: str, raw_input: Any) -> ToolResult:
        """
        Validate input and run the named tool.

        Raises:
            UnknownToolError: no tool registered under ``name``

        Returns:
            ToolSuccess from the handler, or ToolFailure for invalid input
            and for any error the handler raised.
        """
        tool = self._tools.get(name)
        if tool is None:
            raise UnknownToolError(f"Unknown tool: {name}")

        try:
            args = tool.validate(raw_input)
        except ToolValidationError as exc:
            return ToolFailure(message=exc.message, code=exc.code)

        try:
            return await tool.handler(args)
        except GatewayError as exc:
            logger.info(f"Tool {name} failed: [{exc.code}] {exc.message}")
            return ToolFailure(message=exc.message, code=exc.code)
        except Exception as exc:
            logger.exception(f"Tool {name} raised unexpectedly: {exc}")
            message = str(exc) or type(exc).__name__
            return ToolFailure(message=f"{name} failed: {message}", code="INTERNAL_ERROR")
