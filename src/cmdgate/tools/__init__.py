"""Tools exposing the gateway's operations."""

from typing import TYPE_CHECKING

from cmdgate.core.logger import CmdGateLogger
from cmdgate.tools.base import BaseTool, ToolContext, ToolRegistry
from cmdgate.tools.command_output import GetCommandOutputTool, ReadCommandLogTool
from cmdgate.tools.directories import (
    GetCurrentDirectoryTool,
    SetCurrentDirectoryTool,
    ValidateDirectoriesTool,
)
from cmdgate.tools.execute_command import ExecuteCommandTool

if TYPE_CHECKING:
    from cmdgate.core.gateway import CommandGateway


def build_registry(gateway: "CommandGateway", logger: CmdGateLogger | None = None) -> ToolRegistry:
    """Create a registry with every tool the gateway's configuration supports.

    Log tools are registered only when logging is configured, and
    ``validate_directories`` only when working directories are restricted.
    """
    registry = ToolRegistry(ToolContext(gateway=gateway, logger=logger or gateway.logger))

    registry.register(ExecuteCommandTool(gateway.enabled_shells()))
    if gateway.retriever is not None:
        registry.register(GetCommandOutputTool())
        registry.register(ReadCommandLogTool())
    if gateway.config.security.restrict_working_directory:
        registry.register(ValidateDirectoriesTool())
    registry.register(GetCurrentDirectoryTool())
    registry.register(SetCurrentDirectoryTool())

    return registry


__all__ = [
    "BaseTool",
    "ExecuteCommandTool",
    "GetCommandOutputTool",
    "GetCurrentDirectoryTool",
    "ReadCommandLogTool",
    "SetCurrentDirectoryTool",
    "ToolContext",
    "ToolRegistry",
    "ValidateDirectoriesTool",
    "build_registry",
]
