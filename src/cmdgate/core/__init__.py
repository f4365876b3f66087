"""Core modules for cmdgate.

Configuration, exceptions, logging, shell dialects, the process executor
abstraction and the gateway that ties them together.
"""

from .exceptions import (
    # Error codes
    E_EXECUTION,
    E_NOT_FOUND,
    E_PERMISSIONS,
    E_TIMEOUT,
    E_TOOL_UNKNOWN,
    E_UNSAFE,
    E_VALIDATION,
    CmdGateException,
    CommandExecutionError,
    ConfigurationError,
    LogErrorType,
    LogRetrievalError,
    ParameterError,
    PolicyViolationError,
    format_error_for_log,
    format_error_for_user,
)
from .tool_protocol import ToolCall, ToolDefinition, ToolResult

__all__ = [
    # Error codes
    "E_EXECUTION",
    "E_NOT_FOUND",
    "E_PERMISSIONS",
    "E_TIMEOUT",
    "E_TOOL_UNKNOWN",
    "E_UNSAFE",
    "E_VALIDATION",
    # Exception classes
    "CmdGateException",
    "CommandExecutionError",
    "ConfigurationError",
    "LogErrorType",
    "LogRetrievalError",
    "ParameterError",
    "PolicyViolationError",
    # Tool protocol
    "ToolCall",
    "ToolDefinition",
    "ToolResult",
    # Error formatting utilities
    "format_error_for_log",
    "format_error_for_user",
]
