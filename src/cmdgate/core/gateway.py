"""Command gateway.

Wires one request through parameter checks, working-directory validation,
chain validation, process execution, log storage and tail truncation. A
request that fails validation is recorded as a zero-execution log entry and
never reaches the executor.
"""

import os
from dataclasses import dataclass, field
from typing import Any, NoReturn

from cmdgate.core.command_executor import CommandExecutor, combine_output
from cmdgate.core.config import (
    MAX_OUTPUT_LINES_LIMIT,
    MAX_TIMEOUT_SECONDS,
    GatewayConfig,
    ResolvedShellConfig,
    resolve_shell_config,
)
from cmdgate.core.exceptions import (
    E_PERMISSIONS,
    CommandExecutionError,
    LogErrorType,
    LogRetrievalError,
    ParameterError,
    PolicyViolationError,
)
from cmdgate.core.executors import SubprocessExecutor
from cmdgate.core.logger import CmdGateLogger
from cmdgate.core.shells import ValidationContext, create_validation_context
from cmdgate.logs.retrieval import OutputRetriever, RetrievedOutput, summarize_entry
from cmdgate.logs.search import DEFAULT_CONTEXT_LINES
from cmdgate.logs.storage import LogStorage
from cmdgate.logs.truncation import (
    TruncatedOutput,
    count_lines,
    format_truncated_output,
    resolve_max_output_lines,
    truncate_output,
)
from cmdgate.security.command_validator import CommandValidator, tokenize_chain
from cmdgate.security.path_validation import (
    ValidationOutcome,
    ViolationKind,
    validate_working_directory,
)

_DIRECTORY_VIOLATIONS = (ViolationKind.DIRECTORY_NOT_ALLOWED, ViolationKind.INVALID_PATH)


@dataclass
class ExecutionResult:
    """Response to an execute request."""

    output: str
    is_error: bool
    metadata: dict[str, Any] = field(default_factory=dict)


def check_int_parameter(name: str, value: Any, minimum: int, maximum: int) -> int:
    """Validate an optional integer request parameter.

    Raises:
        ParameterError: If ``value`` is not an int (bools included) or out of range
    """
    if isinstance(value, bool) or not isinstance(value, int):
        raise ParameterError(f"{name} must be an integer, got: {value!r}", parameter=name, value=value)
    if value < minimum:
        raise ParameterError(f"{name} must be at least {minimum}, got: {value}", parameter=name, value=value)
    if value > maximum:
        raise ParameterError(f"{name} must be at most {maximum}, got: {value}", parameter=name, value=value)
    return value


class CommandGateway:
    """Policy-guarded command execution with bounded, retrievable output."""

    def __init__(
        self,
        config: GatewayConfig,
        executor: CommandExecutor | None = None,
        logger: CmdGateLogger | None = None,
    ) -> None:
        """Initialize gateway.

        Args:
            config: Gateway configuration; enabled shells are resolved once here
            executor: Process backend (defaults to SubprocessExecutor)
            logger: Structured logger
        """
        self.config = config
        self.logger = logger or CmdGateLogger()
        self.executor = executor or SubprocessExecutor()
        self.validator = CommandValidator()

        self._shells: dict[str, ResolvedShellConfig] = {}
        for name in config.shells:
            resolved = resolve_shell_config(config, name)
            if resolved is not None:
                self._shells[name] = resolved

        self.storage: LogStorage | None = None
        self.retriever: OutputRetriever | None = None
        if config.logging is not None:
            self.storage = LogStorage(config.logging, logger=self.logger)
            self.retriever = OutputRetriever(self.storage, config.logging)
            if self.storage.log_directory is not None:
                self.logger.warn(
                    "command_logs_on_disk",
                    log_directory=str(self.storage.log_directory),
                    note="log files may contain sensitive command output",
                )

        self._current_directory = self._initial_directory()

    async def __aenter__(self) -> "CommandGateway":
        self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.shutdown()

    # -- shells --------------------------------------------------------

    def enabled_shells(self) -> list[str]:
        return list(self._shells)

    def shell_config(self, shell: str) -> ResolvedShellConfig:
        """Return the resolved config of an enabled shell.

        Raises:
            ParameterError: If the shell is unknown or disabled
        """
        resolved = self._shells.get(shell)
        if resolved is None:
            enabled = ", ".join(self._shells) or "none"
            raise ParameterError(
                f"Invalid shell: {shell!r}. Enabled shells: {enabled}", parameter="shell", value=shell
            )
        return resolved

    def validation_context(self, shell: str) -> ValidationContext:
        return create_validation_context(shell, self.shell_config(shell))

    def security_summary(self) -> dict[str, Any]:
        """Describe the effective policy of every enabled shell."""
        summary: dict[str, Any] = {}
        for name, cfg in self._shells.items():
            summary[name] = {
                "type": cfg.type,
                "kind": cfg.kind.value,
                "executable": [cfg.executable.command, *cfg.executable.args],
                "max_command_length": cfg.security.max_command_length,
                "command_timeout": cfg.security.command_timeout,
                "injection_protection": cfg.security.enable_injection_protection,
                "restrict_working_directory": cfg.security.restrict_working_directory,
                "blocked_commands": list(cfg.restrictions.blocked_commands),
                "blocked_arguments": list(cfg.restrictions.blocked_arguments),
                "blocked_operators": list(cfg.restrictions.blocked_operators),
                "allowed_paths": list(cfg.paths.allowed_paths),
            }
        return summary

    # -- execution -----------------------------------------------------

    async def execute(
        self,
        shell: str,
        command: str,
        working_dir: str | None = None,
        max_output_lines: int | None = None,
        timeout: int | None = None,
    ) -> ExecutionResult:
        """Validate and run a command.

        Args:
            shell: Name of an enabled shell
            command: Command string; steps may be chained with ``&&``
            working_dir: Starting directory (defaults to the current directory)
            max_output_lines: Per-call line limit for the response (1-10000)
            timeout: Per-call timeout in seconds (1-3600)

        Returns:
            ExecutionResult with tail-truncated output and metadata

        Raises:
            ParameterError: Bad shell name, command, limit or timeout
            PolicyViolationError: The command or a directory broke the policy
            CommandExecutionError: Spawn failure or timeout
        """
        shell_cfg = self.shell_config(shell)
        if not isinstance(command, str) or not command.strip():
            raise ParameterError("command must be a non-empty string", parameter="command", value=command)
        if max_output_lines is not None:
            check_int_parameter("max_output_lines", max_output_lines, 1, MAX_OUTPUT_LINES_LIMIT)
        if timeout is not None:
            check_int_parameter("timeout", timeout, 1, MAX_TIMEOUT_SECONDS)

        if self.storage is not None and not self.storage.cleanup_running:
            self.storage.start_cleanup()

        context = create_validation_context(shell, shell_cfg)

        directory = working_dir if working_dir is not None else self._current_directory
        if not directory:
            raise ParameterError(
                "No working directory specified and no current directory is set. "
                "Pass working_dir or call set_current_directory first.",
                parameter="working_dir",
            )

        outcome = validate_working_directory(directory, context)
        if not outcome.ok:
            self._reject(context, command, directory, outcome)
        # the shell's own spelling of the directory from here on
        directory = outcome.final_directory or directory

        outcome = self.validator.validate(context, command, directory)
        if not outcome.ok:
            self._reject(context, command, directory, outcome)

        argv = context.dialect.build_args(shell_cfg, command, tokenize_chain(command))
        spawn = context.dialect.spawn_location(directory, shell_cfg)
        env = {**os.environ, **spawn.env}
        effective_timeout = timeout if timeout is not None else shell_cfg.security.command_timeout

        with self.logger.operation("execute_command", shell=shell, cwd=spawn.cwd):
            try:
                result = await self.executor.execute_command(argv, spawn.cwd, env, effective_timeout)
            except TimeoutError as e:
                self.logger.warn("command_timeout", shell=shell, command=command, timeout=effective_timeout)
                raise CommandExecutionError(
                    f"Command timed out after {effective_timeout} seconds: {command}",
                    shell=shell,
                    reason="timeout",
                ) from e
            except OSError as e:
                self.logger.error("command_spawn_failed", shell=shell, command=command, error=str(e))
                raise CommandExecutionError(
                    f"Failed to start {shell} process: {e}", shell=shell, reason="spawn"
                ) from e

        combined = combine_output(result)

        execution_id: str | None = None
        file_path: str | None = None
        if self.storage is not None:
            entry = self.storage.store_log(
                command, shell, directory, result.stdout, result.stderr, result.exit_code
            )
            execution_id = entry.id
            stored = self.storage.get_log(entry.id)
            file_path = stored.file_path if stored is not None else None

        truncated = self._truncate(combined, shell_cfg, max_output_lines, execution_id, file_path)
        expose = self.config.logging is not None and self.config.logging.expose_full_path

        self.logger.info(
            "command_executed",
            shell=shell,
            exit_code=result.exit_code,
            duration_ms=result.duration_ms,
            execution_id=execution_id,
        )

        return ExecutionResult(
            output=format_truncated_output(truncated),
            is_error=result.exit_code != 0,
            metadata={
                "exit_code": result.exit_code,
                "shell": shell,
                "working_directory": directory,
                "execution_id": execution_id,
                "total_lines": truncated.total_lines,
                "returned_lines": truncated.returned_lines,
                "was_truncated": truncated.was_truncated,
                "file_path": file_path if expose else None,
                "duration_ms": result.duration_ms,
            },
        )

    def _truncate(
        self,
        combined: str,
        shell_cfg: ResolvedShellConfig,
        per_call: int | None,
        execution_id: str | None,
        file_path: str | None,
    ) -> TruncatedOutput:
        logging_cfg = self.config.logging
        if logging_cfg is None:
            lines = count_lines(combined)
            return TruncatedOutput(output=combined, was_truncated=False, total_lines=lines, returned_lines=lines)

        limit = resolve_max_output_lines(per_call, shell_cfg.max_output_lines, logging_cfg.max_output_lines)
        return truncate_output(
            combined,
            limit,
            logging_cfg,
            execution_id=execution_id,
            file_path=file_path,
            expose_full_path=logging_cfg.expose_full_path,
        )

    def _reject(
        self,
        context: ValidationContext,
        command: str,
        directory: str,
        outcome: ValidationOutcome,
    ) -> NoReturn:
        """Record a rejected request and raise PolicyViolationError."""
        kind = outcome.kind or ViolationKind.UNPARSEABLE
        metadata: dict[str, Any] = {}
        if outcome.step is not None:
            metadata["step"] = outcome.step

        self.logger.warn(
            "command_rejected",
            shell=context.shell_name,
            violation=kind.value,
            value=outcome.value,
            command=command,
        )

        if self.storage is not None:
            entry = self.storage.store_log(
                command, context.shell_name, directory, "", f"Validation error: {outcome.message}", -1
            )
            metadata["execution_id"] = entry.id

        raise PolicyViolationError(
            outcome.message,
            error_code=E_PERMISSIONS if kind in _DIRECTORY_VIOLATIONS else None,
            metadata=metadata,
            kind=kind.value,
            shell=context.shell_name,
            value=outcome.value,
        )

    # -- retrieval -----------------------------------------------------

    def _require_retriever(self) -> OutputRetriever:
        if self.retriever is None:
            raise LogRetrievalError(
                "Log storage is not enabled. Enable logging to retrieve command output.",
                error_type=LogErrorType.LOGS_DISABLED,
            )
        return self.retriever

    def get_command_output(
        self,
        execution_id: str,
        start_line: int | None = None,
        end_line: int | None = None,
        search: str | None = None,
        max_lines: int | None = None,
        max_bytes: int | None = None,
    ) -> RetrievedOutput:
        """Retrieve stored output within the configured line and byte caps."""
        return self._require_retriever().get_command_output(
            execution_id,
            start_line=start_line,
            end_line=end_line,
            search=search,
            max_lines=max_lines,
            max_bytes=max_bytes,
        )

    def read_log(
        self,
        execution_id: str,
        start: int | None = None,
        end: int | None = None,
        search: str | None = None,
        occurrence: int = 1,
        context_lines: int = DEFAULT_CONTEXT_LINES,
        case_insensitive: bool = False,
        line_numbers: bool = True,
    ) -> str:
        """Read a stored log in full, range or search mode.

        Search mode wins when ``search`` is given; range mode when either
        endpoint is given (missing ones default to the first and last line).
        """
        retriever = self._require_retriever()
        if not retriever.config.enable_log_resources:
            raise LogRetrievalError(
                "Log resources are disabled in the logging configuration.",
                error_type=LogErrorType.LOGS_DISABLED,
            )

        if search:
            return retriever.search(
                execution_id,
                search,
                occurrence=occurrence,
                context_lines=context_lines,
                case_insensitive=case_insensitive,
                line_numbers=line_numbers,
            ).text
        if start is not None or end is not None:
            return retriever.read_range(
                execution_id,
                1 if start is None else start,
                -1 if end is None else end,
                line_numbers=line_numbers,
            )
        return retriever.read_full(execution_id)

    def list_recent_logs(self, n: int = 5, shell: str | None = None) -> list[dict[str, Any]]:
        return [summarize_entry(e) for e in self._require_retriever().list_recent(n, shell)]

    # -- directories ---------------------------------------------------

    def _initial_directory(self) -> str | None:
        if self.config.paths.initial_dir:
            return self.config.paths.initial_dir

        cwd = os.getcwd()
        if not self.config.security.restrict_working_directory:
            return cwd
        for name in self._shells:
            if validate_working_directory(cwd, self.validation_context(name)).ok:
                return cwd
        return None

    def get_current_directory(self) -> str | None:
        return self._current_directory

    def set_current_directory(self, path: str) -> str:
        """Change the default working directory.

        Raises:
            ParameterError: If the directory does not exist
            PolicyViolationError: If no enabled shell allows it
        """
        if not isinstance(path, str) or not path.strip():
            raise ParameterError("path must be a non-empty string", parameter="path", value=path)

        resolved = os.path.abspath(os.path.expanduser(path))
        if not os.path.isdir(resolved):
            raise ParameterError(f"Directory does not exist: {path}", parameter="path", value=path)

        if self.config.security.restrict_working_directory:
            report = self.validate_directories([resolved])
            if report["invalid"]:
                reason = report["invalid"][0]["reason"]
                raise PolicyViolationError(
                    reason,
                    error_code=E_PERMISSIONS,
                    kind=ViolationKind.DIRECTORY_NOT_ALLOWED.value,
                    value=path,
                )

        self._current_directory = resolved
        self.logger.info("current_directory_changed", path=resolved)
        return resolved

    def validate_directories(self, directories: list[str], shell: str | None = None) -> dict[str, Any]:
        """Check directories against one shell, or against every enabled shell.

        Returns:
            ``{"valid": [...], "invalid": [{"directory", "reason"}, ...]}``
        """
        if not directories:
            raise ParameterError("directories must not be empty", parameter="directories")

        shells = [shell] if shell is not None else self.enabled_shells()
        contexts = [self.validation_context(name) for name in shells]

        valid: list[str] = []
        invalid: list[dict[str, str]] = []
        for directory in directories:
            reason = None
            for context in contexts:
                outcome = validate_working_directory(directory, context)
                if not outcome.ok:
                    reason = outcome.message
                    break
            if reason is None:
                valid.append(directory)
            else:
                invalid.append({"directory": directory, "reason": reason})

        return {"valid": valid, "invalid": invalid}

    # -- lifecycle -----------------------------------------------------

    def start(self) -> None:
        """Start the periodic log cleanup (requires a running event loop)."""
        if self.storage is not None:
            self.storage.start_cleanup()

    async def shutdown(self) -> None:
        """Stop cleanup, wait for pending disk writes, and clear the store."""
        if self.storage is not None:
            await self.storage.aclose()
            self.storage.clear()
