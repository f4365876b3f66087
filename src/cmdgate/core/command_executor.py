"""Command execution abstraction.

The gateway builds the argv for a shell and hands it to a CommandExecutor.
Keeping the process backend behind this interface lets tests substitute a
double that never spawns anything.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any


@dataclass
class CommandResult:
    """Result from command execution.

    Attributes:
        stdout: Standard output from command
        stderr: Standard error from command
        exit_code: Command exit code (0 = success, -1 when none was reported)
        duration_ms: Execution time in milliseconds
        metadata: Optional executor-specific metadata
    """

    stdout: str
    stderr: str
    exit_code: int
    duration_ms: int
    metadata: dict[str, Any] | None = None


class CommandExecutor(ABC):
    """Abstract interface for running a shell process."""

    @abstractmethod
    async def execute_command(
        self,
        argv: list[str],
        cwd: str,
        env: dict[str, str],
        timeout: int,
    ) -> CommandResult:
        """Run ``argv`` without an intermediate shell.

        Args:
            argv: Program followed by its arguments
            cwd: Working directory for the process
            env: Complete environment for the process
            timeout: Timeout in seconds

        Returns:
            CommandResult with stdout, stderr, exit code, and timing

        Raises:
            TimeoutError: If the process exceeds the timeout (it is killed first)
            OSError: If the process cannot be started
        """
        ...

    @abstractmethod
    def get_name(self) -> str:
        """Get executor name for logging/debugging."""
        ...


NO_OUTPUT_PLACEHOLDER = "Command completed successfully (no output)"


def combine_streams(stdout: str, stderr: str, exit_code: int) -> str:
    """Build the single text shown to the caller for a finished process.

    Successful commands show stdout. Failed commands show the exit code
    followed by the error and standard output sections that are non-empty.
    """
    if exit_code == 0:
        output = stdout
    else:
        parts = [f"Command failed with exit code {exit_code}"]
        if stderr:
            parts.append(f"Error output:\n{stderr}")
        if stdout:
            parts.append(f"Standard output:\n{stdout}")
        output = "\n".join(parts)

    return output or NO_OUTPUT_PLACEHOLDER


def combine_output(result: CommandResult) -> str:
    """Combine the streams of a CommandResult."""
    return combine_streams(result.stdout, result.stderr, result.exit_code)
