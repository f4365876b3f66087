"""Working-directory tools."""

from cmdgate.core.exceptions import E_PERMISSIONS, E_VALIDATION
from cmdgate.core.tool_protocol import ToolCall, ToolDefinition, ToolResult
from cmdgate.tools.base import BaseTool, ToolContext, require_string


class ValidateDirectoriesTool(BaseTool):
    """Check directories against the allow-list without running anything."""

    async def execute(self, call: ToolCall, context: ToolContext) -> ToolResult:
        directories = call.arguments.get("directories")
        if not isinstance(directories, list) or not all(isinstance(d, str) for d in directories):
            return ToolResult(
                success=False,
                error="directories must be a list of strings",
                error_code=E_VALIDATION,
            )

        report = context.gateway.validate_directories(directories, shell=call.arguments.get("shell"))
        if report["invalid"]:
            lines = ["The following directories are not allowed:"]
            lines.extend(f"  {item['directory']}: {item['reason']}" for item in report["invalid"])
            return ToolResult(
                success=False,
                error="\n".join(lines),
                error_code=E_PERMISSIONS,
                data=report,
            )

        return ToolResult(success=True, output="All directories are valid", data=report)

    def get_definition(self) -> ToolDefinition:
        return ToolDefinition(
            name="validate_directories",
            description="Check whether directories are within the allowed paths",
            parameters={
                "type": "object",
                "properties": {
                    "directories": {
                        "type": "array",
                        "items": {"type": "string"},
                        "description": "Directories to check",
                    },
                    "shell": {
                        "type": "string",
                        "description": "Validate for this shell only (default: every enabled shell)",
                    },
                },
                "required": ["directories"],
            },
        )


class GetCurrentDirectoryTool(BaseTool):
    """Report the default working directory."""

    async def execute(self, call: ToolCall, context: ToolContext) -> ToolResult:
        current = context.gateway.get_current_directory()
        if current is None:
            return ToolResult(
                success=True,
                output="No current directory is set. Use set_current_directory first.",
                data={"current_directory": None},
            )
        return ToolResult(success=True, output=current, data={"current_directory": current})

    def get_definition(self) -> ToolDefinition:
        return ToolDefinition(
            name="get_current_directory",
            description="Get the current working directory",
            parameters={"type": "object", "properties": {}},
        )


class SetCurrentDirectoryTool(BaseTool):
    """Change the default working directory within the allow-list."""

    async def execute(self, call: ToolCall, context: ToolContext) -> ToolResult:
        path = require_string(call.arguments, "path")
        if isinstance(path, ToolResult):
            return path

        current = context.gateway.set_current_directory(path)
        return ToolResult(
            success=True,
            output=f"Current directory changed to: {current}",
            data={"current_directory": current},
        )

    def get_definition(self) -> ToolDefinition:
        return ToolDefinition(
            name="set_current_directory",
            description="Set the current working directory",
            parameters={
                "type": "object",
                "properties": {
                    "path": {"type": "string", "description": "Path to set as current directory"}
                },
                "required": ["path"],
            },
            safety={"read_only": False},
        )
