"""Tools for reading stored command output."""

import json

from cmdgate.core.config import MAX_OUTPUT_LINES_LIMIT
from cmdgate.core.tool_protocol import ToolCall, ToolDefinition, ToolResult
from cmdgate.logs.search import DEFAULT_CONTEXT_LINES, MAX_CONTEXT_LINES
from cmdgate.tools.base import BaseTool, ToolContext, require_string


class GetCommandOutputTool(BaseTool):
    """Byte-budgeted retrieval of a stored execution's output."""

    async def execute(self, call: ToolCall, context: ToolContext) -> ToolResult:
        execution_id = require_string(call.arguments, "execution_id")
        if isinstance(execution_id, ToolResult):
            return execution_id

        retrieved = context.gateway.get_command_output(
            execution_id,
            start_line=call.arguments.get("start_line"),
            end_line=call.arguments.get("end_line"),
            search=call.arguments.get("search"),
            max_lines=call.arguments.get("max_lines"),
            max_bytes=call.arguments.get("max_bytes"),
        )
        return ToolResult(success=True, output=retrieved.text, data=retrieved.metadata)

    def get_definition(self) -> ToolDefinition:
        return ToolDefinition(
            name="get_command_output",
            description=(
                "Read the stored output of a previous execute_command call. Optionally "
                "narrow it to a line range (negative numbers count from the end) and/or "
                "filter lines with a case-insensitive regex. Responses are capped by line "
                "count and byte size."
            ),
            parameters={
                "type": "object",
                "properties": {
                    "execution_id": {
                        "type": "string",
                        "description": "execution_id returned by execute_command",
                    },
                    "start_line": {"type": "integer", "description": "First line (1-based)"},
                    "end_line": {"type": "integer", "description": "Last line (inclusive)"},
                    "search": {"type": "string", "description": "Regex to filter lines"},
                    "max_lines": {
                        "type": "integer",
                        "minimum": 1,
                        "maximum": MAX_OUTPUT_LINES_LIMIT,
                        "description": "Maximum lines to return",
                    },
                    "max_bytes": {
                        "type": "integer",
                        "minimum": 1,
                        "description": "Maximum response size in bytes",
                    },
                },
                "required": ["execution_id"],
            },
        )


class ReadCommandLogTool(BaseTool):
    """Full, range or search view of a stored log, plus recent-log listing."""

    async def execute(self, call: ToolCall, context: ToolContext) -> ToolResult:
        args = call.arguments

        if args.get("recent") is not None:
            logs = context.gateway.list_recent_logs(args["recent"], shell=args.get("shell"))
            return ToolResult(
                success=True,
                output=json.dumps({"logs": logs, "count": len(logs)}, indent=2),
                data={"count": len(logs)},
            )

        execution_id = require_string(args, "execution_id")
        if isinstance(execution_id, ToolResult):
            return execution_id

        text = context.gateway.read_log(
            execution_id,
            start=args.get("start"),
            end=args.get("end"),
            search=args.get("search"),
            occurrence=args.get("occurrence", 1),
            context_lines=args.get("context", DEFAULT_CONTEXT_LINES),
            case_insensitive=bool(args.get("case_insensitive", False)),
            line_numbers=bool(args.get("line_numbers", True)),
        )
        return ToolResult(success=True, output=text, data={"execution_id": execution_id})

    def get_definition(self) -> ToolDefinition:
        return ToolDefinition(
            name="read_command_log",
            description=(
                "Read a stored command log. With 'search', show one regex match with "
                "surrounding context; with 'start'/'end', show a numbered line range; "
                "otherwise return the full output. With 'recent', list the most recent logs."
            ),
            parameters={
                "type": "object",
                "properties": {
                    "execution_id": {"type": "string", "description": "Stored execution id"},
                    "start": {"type": "integer", "description": "First line, negative from end"},
                    "end": {"type": "integer", "description": "Last line, negative from end"},
                    "search": {"type": "string", "description": "Regex pattern"},
                    "occurrence": {"type": "integer", "minimum": 1, "description": "Match to show"},
                    "context": {
                        "type": "integer",
                        "minimum": 0,
                        "maximum": MAX_CONTEXT_LINES,
                        "description": "Context lines around the match",
                    },
                    "case_insensitive": {"type": "boolean"},
                    "line_numbers": {"type": "boolean"},
                    "recent": {
                        "type": "integer",
                        "minimum": 1,
                        "maximum": 100,
                        "description": "List this many recent logs instead",
                    },
                    "shell": {"type": "string", "description": "Shell filter for 'recent'"},
                },
            },
        )
