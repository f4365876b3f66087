"""Command execution tool.

Thin adapter from a tool call onto ``CommandGateway.execute``. Policy,
parameter and execution errors propagate as cmdgate exceptions and are turned
into failed results by the registry.
"""

from cmdgate.core.config import MAX_OUTPUT_LINES_LIMIT, MAX_TIMEOUT_SECONDS
from cmdgate.core.tool_protocol import ToolCall, ToolDefinition, ToolResult
from cmdgate.tools.base import BaseTool, ToolContext, require_string


class ExecuteCommandTool(BaseTool):
    """Run a command in one of the enabled shells."""

    def __init__(self, enabled_shells: list[str] | None = None) -> None:
        """Initialize execute tool.

        Args:
            enabled_shells: Shell names advertised in the schema enum
        """
        self.enabled_shells = enabled_shells or []

    async def execute(self, call: ToolCall, context: ToolContext) -> ToolResult:
        """Execute a command through the gateway.

        A command that ran but exited non-zero is reported as a failed result
        that still carries the output and metadata.
        """
        shell = require_string(call.arguments, "shell")
        if isinstance(shell, ToolResult):
            return shell
        command = require_string(call.arguments, "command")
        if isinstance(command, ToolResult):
            return command

        result = await context.gateway.execute(
            shell,
            command,
            working_dir=call.arguments.get("working_dir"),
            max_output_lines=call.arguments.get("max_output_lines"),
            timeout=call.arguments.get("timeout"),
        )

        return ToolResult(
            success=not result.is_error,
            output=result.output,
            error=result.output if result.is_error else None,
            data=result.metadata,
        )

    def get_definition(self) -> ToolDefinition:
        shell_schema: dict[str, object] = {
            "type": "string",
            "description": "Shell to run the command in",
        }
        if self.enabled_shells:
            shell_schema["enum"] = list(self.enabled_shells)

        return ToolDefinition(
            name="execute_command",
            description=(
                "Execute a command in the selected shell. Steps may be chained with '&&'; "
                "every step is checked against the shell's security policy before anything "
                "runs. Long output is cut to its last lines; use get_command_output with the "
                "returned execution_id to read the rest."
            ),
            parameters={
                "type": "object",
                "properties": {
                    "shell": shell_schema,
                    "command": {"type": "string", "description": "Command to execute"},
                    "working_dir": {
                        "type": "string",
                        "description": "Working directory (defaults to the current directory)",
                    },
                    "max_output_lines": {
                        "type": "integer",
                        "minimum": 1,
                        "maximum": MAX_OUTPUT_LINES_LIMIT,
                        "description": "Lines of output to return (overrides the configured limit)",
                    },
                    "timeout": {
                        "type": "integer",
                        "minimum": 1,
                        "maximum": MAX_TIMEOUT_SECONDS,
                        "description": "Timeout in seconds (overrides the shell's default)",
                    },
                },
                "required": ["shell", "command"],
            },
            safety={"executes_commands": True, "read_only": False},
        )
