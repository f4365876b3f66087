"""Tool protocol core types and helpers.

The gateway is exposed to callers as a small set of tools. A tool call names
the operation and carries JSON arguments; a tool result carries the response
text plus structured metadata.
"""

from dataclasses import dataclass, field
from typing import Any


@dataclass
class ToolCall:
    """Represents a tool call request from a client."""

    id: str
    name: str
    arguments: dict[str, Any]


@dataclass
class ToolResult:
    """Result from tool execution."""

    success: bool
    output: str | None = None
    error: str | None = None
    error_code: str | None = None
    data: dict[str, Any] | None = None


@dataclass
class ToolDefinition:
    """Tool definition with JSON Schema and safety flags."""

    name: str
    description: str
    parameters: dict[str, Any]  # JSON Schema
    safety: dict[str, bool] = field(default_factory=dict)  # executes_commands, read_only

    def __post_init__(self) -> None:
        """Validate tool definition structure."""
        if not isinstance(self.parameters, dict):
            raise ValueError("Tool parameters must be a dictionary")
        if "type" not in self.parameters:
            raise ValueError("Tool parameters must specify 'type'")

        safety_defaults = {"executes_commands": False, "read_only": True}
        for key, default in safety_defaults.items():
            if key not in self.safety:
                self.safety[key] = default


def format_tool_result(call_id: str, result: ToolResult) -> dict[str, Any]:
    """Format tool result as a response message.

    Args:
        call_id: ID of the originating tool call
        result: ToolResult to format

    Returns:
        Message dictionary with ``isError`` set for failed calls
    """
    message: dict[str, Any] = {
        "tool_call_id": call_id,
        "content": result.output or (result.error if not result.success else ""),
        "isError": not result.success,
    }

    if result.data or result.error_code:
        message["meta"] = {}
        if result.data:
            message["meta"]["data"] = result.data
        if result.error_code:
            message["meta"]["error_code"] = result.error_code

    return message


def validate_tool_schema(tool_def: ToolDefinition) -> bool:
    """Validate tool definition JSON Schema.

    Args:
        tool_def: ToolDefinition to validate

    Returns:
        True if valid, False otherwise
    """
    try:
        params = tool_def.parameters

        if not isinstance(params.get("type"), str):
            return False

        if params["type"] == "object":
            if not isinstance(params.get("properties"), dict):
                return False
            if "required" in params and not isinstance(params["required"], list):
                return False
            missing = set(params.get("required", [])) - set(params["properties"])
            if missing:
                return False

        for prop_def in params.get("properties", {}).values():
            if not isinstance(prop_def, dict) or "type" not in prop_def:
                return False

        return True

    except (KeyError, TypeError, AttributeError):
        return False
