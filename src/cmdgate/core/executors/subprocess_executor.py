"""Subprocess-based command executor.

This is the default executor. It runs an argv directly (no intermediate
shell), supervises it with a timeout, and kills the whole process group when
the timeout fires.
"""

import asyncio
import os
import signal
import sys

from cmdgate.core.command_executor import CommandExecutor, CommandResult


class SubprocessExecutor(CommandExecutor):
    """Execute commands using asyncio.subprocess."""

    def get_name(self) -> str:
        """Get executor name."""
        return "subprocess"

    async def execute_command(
        self,
        argv: list[str],
        cwd: str,
        env: dict[str, str],
        timeout: int,
    ) -> CommandResult:
        """Execute argv using asyncio.subprocess.

        Args:
            argv: Program followed by its arguments
            cwd: Working directory for the process
            env: Environment variables
            timeout: Timeout in seconds

        Returns:
            CommandResult with stdout, stderr, exit code, and timing

        Raises:
            TimeoutError: If command exceeds timeout
            OSError: If command execution fails
        """

        def setup_subprocess() -> None:
            """Create a new process group so the whole tree can be killed."""
            os.setpgrp()

        if not argv:
            raise OSError("Failed to execute command: empty argv")

        start_time = asyncio.get_running_loop().time()
        preexec = setup_subprocess if sys.platform != "win32" else None

        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=cwd,
                env=env,
                preexec_fn=preexec,
            )
        except (OSError, ValueError) as e:
            raise OSError(f"Failed to execute command: {e}") from e

        try:
            stdout_data, stderr_data = await asyncio.wait_for(process.communicate(), timeout=timeout)
        except TimeoutError:
            await self._kill(process)
            raise TimeoutError(f"Command timed out after {timeout} seconds") from None
        except asyncio.CancelledError:
            await self._kill(process)
            raise

        end_time = asyncio.get_running_loop().time()
        duration_ms = int((end_time - start_time) * 1000)

        stdout = stdout_data.decode("utf-8", errors="replace")
        stderr = stderr_data.decode("utf-8", errors="replace")
        exit_code = process.returncode if process.returncode is not None else -1

        return CommandResult(
            stdout=stdout,
            stderr=stderr,
            exit_code=exit_code,
            duration_ms=duration_ms,
            metadata={"platform": sys.platform, "pid": process.pid},
        )

    @staticmethod
    async def _kill(process: asyncio.subprocess.Process) -> None:
        """Kill the process (group on POSIX) and reap it."""
        try:
            if sys.platform != "win32":
                os.killpg(os.getpgid(process.pid), signal.SIGKILL)
            else:
                process.kill()
        except ProcessLookupError:
            pass
        await process.wait()
