"""Exception hierarchy with error codes for cmdgate.

Every error surfaced to a caller carries an error code, a human-readable
message naming the violated rule, and structured metadata.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

# Standard error codes
E_NOT_FOUND = "E_NOT_FOUND"
E_VALIDATION = "E_VALIDATION"
E_PERMISSIONS = "E_PERMISSIONS"
E_TIMEOUT = "E_TIMEOUT"
E_UNSAFE = "E_UNSAFE"
E_EXECUTION = "E_EXECUTION"
E_TOOL_UNKNOWN = "E_TOOL_UNKNOWN"


class LogErrorType(str, Enum):
    """Kinds of log retrieval failures."""

    LOG_NOT_FOUND = "LOG_NOT_FOUND"
    INVALID_RANGE = "INVALID_RANGE"
    INVALID_SEARCH = "INVALID_SEARCH"
    NO_MATCHES = "NO_MATCHES"
    INVALID_OCCURRENCE = "INVALID_OCCURRENCE"
    LOGS_DISABLED = "LOGS_DISABLED"


@dataclass
class CmdGateException(Exception):  # noqa: N818
    """Base exception for all cmdgate-specific errors.

    Provides structured error handling with error codes and metadata for
    consistent error reporting across the system.
    """

    message: str
    error_code: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        """Return human-readable error message."""
        return self.message

    def __post_init__(self) -> None:
        """Initialize the exception with the message."""
        super().__init__(self.message)


@dataclass
class PolicyViolationError(CmdGateException):
    """A command or directory was rejected by the shell's security policy.

    Raised before any subprocess is spawned.
    """

    kind: str = ""
    shell: str = ""
    value: str | None = None

    def __post_init__(self) -> None:
        """Initialize with policy-specific metadata."""
        if not self.error_code:
            self.error_code = E_UNSAFE
        if self.kind:
            self.metadata["violation"] = self.kind
        if self.shell:
            self.metadata["shell"] = self.shell
        if self.value is not None:
            self.metadata["value"] = self.value
        super().__post_init__()


@dataclass
class ParameterError(CmdGateException):
    """A request parameter was missing, malformed, or out of range."""

    parameter: str = ""
    value: Any = None

    def __post_init__(self) -> None:
        """Initialize with parameter metadata."""
        if not self.error_code:
            self.error_code = E_VALIDATION
        if self.parameter:
            self.metadata["parameter"] = self.parameter
        if self.value is not None:
            self.metadata["value"] = self.value
        super().__post_init__()


@dataclass
class CommandExecutionError(CmdGateException):
    """The subprocess could not be started, failed, or timed out.

    ``reason`` is one of ``spawn``, ``process`` or ``timeout``.
    """

    shell: str = ""
    reason: str = ""

    def __post_init__(self) -> None:
        """Initialize with execution metadata."""
        if not self.error_code:
            self.error_code = E_TIMEOUT if self.reason == "timeout" else E_EXECUTION
        if self.shell:
            self.metadata["shell"] = self.shell
        if self.reason:
            self.metadata["reason"] = self.reason
        super().__post_init__()


@dataclass
class LogRetrievalError(CmdGateException):
    """Stored output could not be retrieved as requested."""

    error_type: LogErrorType = LogErrorType.LOG_NOT_FOUND
    details: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        """Initialize with retrieval metadata."""
        if not self.error_code:
            self.error_code = (
                E_NOT_FOUND if self.error_type == LogErrorType.LOG_NOT_FOUND else E_VALIDATION
            )
        self.metadata["error_type"] = self.error_type.value
        if self.details:
            self.metadata["details"] = self.details
        super().__post_init__()


@dataclass
class ConfigurationError(CmdGateException):
    """Error in system configuration.

    Raised for invalid config values, missing required settings,
    or configuration file problems.
    """

    key: str = ""
    reason: str = ""

    def __post_init__(self) -> None:
        """Initialize with configuration-specific metadata."""
        if not self.error_code:
            self.error_code = E_VALIDATION
        if self.key:
            self.metadata["config_key"] = self.key
        if self.reason:
            self.metadata["reason"] = self.reason
        super().__post_init__()


def format_error_for_user(exception: CmdGateException) -> str:
    """Format exception for user-friendly display.

    Args:
        exception: The cmdgate exception to format

    Returns:
        Human-readable error message without internal details
    """
    if isinstance(exception, PolicyViolationError):
        return f"Blocked by security policy: {exception.message}"

    if isinstance(exception, ParameterError):
        return f"Invalid parameter: {exception.message}"

    if isinstance(exception, CommandExecutionError):
        if exception.reason == "timeout":
            return f"Command timed out: {exception.message}"
        return f"Command execution failed: {exception.message}"

    if isinstance(exception, LogRetrievalError):
        return f"Output retrieval failed ({exception.error_type.value}): {exception.message}"

    if isinstance(exception, ConfigurationError):
        if exception.key:
            return f"Configuration error '{exception.key}': {exception.message}"
        return f"Configuration error: {exception.message}"

    return str(exception.message)


def format_error_for_log(exception: CmdGateException) -> dict[str, Any]:
    """Format exception for structured logging.

    Args:
        exception: The cmdgate exception to format

    Returns:
        Dictionary with structured error information for logs
    """
    log_data: dict[str, Any] = {
        "error_type": type(exception).__name__,
        "message": exception.message,
        "error_code": exception.error_code,
    }

    if exception.metadata:
        log_data["metadata"] = exception.metadata

    if isinstance(exception, PolicyViolationError):
        log_data["violation"] = exception.kind
        if exception.shell:
            log_data["shell"] = exception.shell

    elif isinstance(exception, CommandExecutionError):
        log_data["reason"] = exception.reason
        if exception.shell:
            log_data["shell"] = exception.shell

    elif isinstance(exception, LogRetrievalError):
        log_data["log_error"] = exception.error_type.value

    elif isinstance(exception, ConfigurationError):
        if exception.key:
            log_data["config_key"] = exception.key

    return log_data
