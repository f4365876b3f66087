"""Working-directory validation and the validation outcome type.

Validation never raises for a policy failure. It returns a ValidationOutcome
tagged with a ViolationKind and the caller decides how to surface it.
"""

from dataclasses import dataclass
from enum import Enum

from cmdgate.core.shells import ValidationContext


class ViolationKind(str, Enum):
    """Which policy rule a rejected request broke."""

    BLOCKED_COMMAND = "blocked_command"
    BLOCKED_ARGUMENT = "blocked_argument"
    BLOCKED_OPERATOR = "blocked_operator"
    COMMAND_TOO_LONG = "command_too_long"
    DIRECTORY_NOT_ALLOWED = "directory_not_allowed"
    INVALID_PATH = "invalid_path"
    UNPARSEABLE = "unparseable"


@dataclass(frozen=True)
class ValidationOutcome:
    """Result of validating a command or a directory.

    Attributes:
        kind: Violated rule, or None when validation passed
        message: Human-readable reason naming the rule and offending value
        value: The offending value (command name, argument, operator, path)
        step: The chain step that failed, when validating a chain
        final_directory: Directory cursor after all ``cd`` steps (on success)
    """

    kind: ViolationKind | None = None
    message: str = ""
    value: str | None = None
    step: str | None = None
    final_directory: str | None = None

    @property
    def ok(self) -> bool:
        return self.kind is None

    @classmethod
    def success(cls, final_directory: str | None = None) -> "ValidationOutcome":
        return cls(final_directory=final_directory)

    @classmethod
    def violation(
        cls,
        kind: ViolationKind,
        message: str,
        value: str | None = None,
        step: str | None = None,
    ) -> "ValidationOutcome":
        return cls(kind=kind, message=message, value=value, step=step)


def is_path_allowed(path: str, context: ValidationContext) -> bool:
    """Check a path against the shell's allow-list in the shell's dialect.

    Args:
        path: Path in any spelling the shell accepts
        context: Validation context of the target shell

    Returns:
        True if the normalized path equals or lies beneath an allowed entry
    """
    dialect = context.dialect
    normalized = dialect.normalize_path(path, context.shell_config)
    return dialect.path_allowed(normalized, context.shell_config)


def validate_working_directory(path: str, context: ValidationContext) -> ValidationOutcome:
    """Validate a working directory for the given shell.

    Passes unconditionally when working-directory restriction is off. With
    restriction on, an empty allow-list rejects everything.

    Returns:
        Success with ``final_directory`` set to the normalized path, or a
        DIRECTORY_NOT_ALLOWED / INVALID_PATH violation
    """
    config = context.shell_config
    dialect = context.dialect

    if not path or not path.strip():
        return ValidationOutcome.violation(
            ViolationKind.INVALID_PATH,
            f"Working directory must not be empty for {context.shell_name}",
            value=path,
        )

    normalized = dialect.normalize_path(path, config)

    if not config.security.restrict_working_directory:
        return ValidationOutcome.success(final_directory=normalized)

    if not dialect.is_valid_format(normalized):
        return ValidationOutcome.violation(
            ViolationKind.INVALID_PATH,
            f"Invalid path format for {context.shell_name}: '{path}'",
            value=path,
        )

    if not config.paths.allowed_paths:
        return ValidationOutcome.violation(
            ViolationKind.DIRECTORY_NOT_ALLOWED,
            f"No allowed paths configured for {context.shell_name}; "
            f"working directory '{path}' is not permitted",
            value=path,
        )

    if not dialect.path_allowed(normalized, config):
        allowed = ", ".join(config.paths.allowed_paths)
        return ValidationOutcome.violation(
            ViolationKind.DIRECTORY_NOT_ALLOWED,
            f"Working directory '{path}' is not within allowed paths for "
            f"{context.shell_name}: {allowed}",
            value=path,
        )

    return ValidationOutcome.success(final_directory=normalized)
