"""Base tool framework and registry.

Defines the abstract interface for all tools and the registry for managing them.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from cmdgate.core.exceptions import (
    E_TOOL_UNKNOWN,
    E_VALIDATION,
    CmdGateException,
    format_error_for_log,
    format_error_for_user,
)
from cmdgate.core.logger import CmdGateLogger
from cmdgate.core.tool_protocol import ToolCall, ToolDefinition, ToolResult

if TYPE_CHECKING:
    from cmdgate.core.gateway import CommandGateway


@dataclass
class ToolContext:
    """Context provided to tools during execution."""

    gateway: "CommandGateway"
    logger: CmdGateLogger


class BaseTool(ABC):
    """Abstract base class for all tools.

    To create a new tool:
    1. Subclass BaseTool
    2. Implement execute() method
    3. Implement get_definition() to return ToolDefinition
    4. Register with ToolRegistry
    """

    @abstractmethod
    async def execute(self, call: ToolCall, context: ToolContext) -> ToolResult:
        """Execute the tool with given arguments.

        Args:
            call: Tool call with name and arguments
            context: Execution context (gateway, logger)

        Returns:
            ToolResult with success status and output/error

        Raises:
            CmdGateException: On policy, parameter, execution or retrieval errors
        """
        raise NotImplementedError

    @abstractmethod
    def get_definition(self) -> ToolDefinition:
        """Get the tool's definition.

        Returns:
            ToolDefinition with name, description, and JSON Schema
        """
        raise NotImplementedError

    def get_name(self) -> str:
        return self.get_definition().name

    def get_description(self) -> str:
        return self.get_definition().description


def require_string(arguments: dict[str, Any], name: str) -> ToolResult | str:
    """Fetch a required non-empty string argument.

    Returns:
        The string, or a failed ToolResult describing the problem
    """
    value = arguments.get(name)
    if not isinstance(value, str) or not value.strip():
        return ToolResult(
            success=False,
            error=f"{name} is required and must be a non-empty string",
            error_code=E_VALIDATION,
        )
    return value


class ToolRegistry:
    """Registry for managing and executing tools."""

    def __init__(self, context: ToolContext) -> None:
        """Initialize tool registry.

        Args:
            context: Tool execution context
        """
        self.context = context
        self._tools: dict[str, BaseTool] = {}

    def register(self, tool: BaseTool) -> None:
        """Register a tool.

        Raises:
            ValueError: If tool with same name already registered
        """
        name = tool.get_name()
        if name in self._tools:
            raise ValueError(f"Tool already registered: {name}")

        self._tools[name] = tool
        self.context.logger.debug("Tool registered", tool_name=name)

    def has(self, name: str) -> bool:
        return name in self._tools

    def get(self, name: str) -> BaseTool | None:
        return self._tools.get(name)

    async def execute(self, call: ToolCall) -> ToolResult:
        """Execute a tool call.

        cmdgate errors become failed results carrying the error code and
        metadata; anything else is logged and re-raised.

        Args:
            call: Tool call to execute

        Returns:
            ToolResult from tool execution
        """
        tool = self._tools.get(call.name)
        if tool is None:
            self.context.logger.warn("Unknown tool requested", tool_name=call.name)
            return ToolResult(
                success=False,
                error=f"Unknown tool: {call.name}",
                error_code=E_TOOL_UNKNOWN,
            )

        try:
            self.context.logger.debug("Executing tool", tool_name=call.name)
            result = await tool.execute(call, self.context)
        except CmdGateException as e:
            self.context.logger.warn("Tool call rejected", tool_name=call.name, error=format_error_for_log(e))
            return ToolResult(
                success=False,
                error=format_error_for_user(e),
                error_code=e.error_code,
                data=dict(e.metadata) or None,
            )
        except Exception as e:
            self.context.logger.error("Tool execution failed", tool_name=call.name, error=str(e))
            raise

        self.context.logger.info("Tool executed", tool_name=call.name, success=result.success)
        return result

    def get_definitions(self) -> list[ToolDefinition]:
        return [tool.get_definition() for tool in self._tools.values()]

    def list_tools(self) -> list[str]:
        return list(self._tools.keys())
