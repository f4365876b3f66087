"""Retrieval of stored output: full text, line ranges, search, and the
byte-budgeted ``get_command_output`` view.
"""

from dataclasses import dataclass, field
from typing import Any

from cmdgate.core.config import LoggingConfig
from cmdgate.core.exceptions import LogErrorType, LogRetrievalError, ParameterError
from cmdgate.logs.line_range import LineRangeProcessor
from cmdgate.logs.search import DEFAULT_CONTEXT_LINES, SearchProcessor, SearchResult, compile_pattern
from cmdgate.logs.storage import CommandLogEntry, LogFilter, LogStorage
from cmdgate.logs.truncation import split_lines

MAX_RECENT_LOGS = 100


@dataclass
class RetrievedOutput:
    """Text selected by ``get_command_output`` plus its metadata."""

    text: str
    metadata: dict[str, Any] = field(default_factory=dict)


def summarize_entry(entry: CommandLogEntry) -> dict[str, Any]:
    """JSON-ready summary of an entry without its output."""
    return {
        "execution_id": entry.id,
        "timestamp": entry.timestamp.isoformat(),
        "command": entry.command,
        "shell": entry.shell,
        "working_directory": entry.working_directory,
        "exit_code": entry.exit_code,
        "total_lines": entry.total_lines,
        "stdout_lines": entry.stdout_lines,
        "stderr_lines": entry.stderr_lines,
        "size": entry.size,
    }


class OutputRetriever:
    """Read-only access to a LogStorage."""

    def __init__(self, storage: LogStorage, config: LoggingConfig) -> None:
        self.storage = storage
        self.config = config

    def get_entry(self, execution_id: str) -> CommandLogEntry:
        """Look up an entry.

        Raises:
            LogRetrievalError: LOG_NOT_FOUND if it never existed or was evicted
        """
        entry = self.storage.get_log(execution_id)
        if entry is None:
            raise LogRetrievalError(
                f"Log entry not found: {execution_id}. It may have expired.",
                error_type=LogErrorType.LOG_NOT_FOUND,
                details={"execution_id": execution_id},
            )
        return entry

    def read_full(self, execution_id: str) -> str:
        return self.get_entry(execution_id).combined_output

    def read_range(
        self,
        execution_id: str,
        start: int,
        end: int,
        line_numbers: bool = True,
    ) -> str:
        """Return a formatted line range, capped at ``max_return_lines`` lines."""
        entry = self.get_entry(execution_id)
        return LineRangeProcessor.process_range(
            entry.combined_output,
            start,
            end,
            line_numbers=line_numbers,
            max_lines=self.config.max_return_lines,
        )

    def search(
        self,
        execution_id: str,
        pattern: str,
        occurrence: int = 1,
        context_lines: int = DEFAULT_CONTEXT_LINES,
        case_insensitive: bool = False,
        line_numbers: bool = True,
    ) -> SearchResult:
        entry = self.get_entry(execution_id)
        return SearchProcessor.search(
            entry.combined_output,
            pattern,
            occurrence=occurrence,
            context_lines=context_lines,
            case_insensitive=case_insensitive,
            line_numbers=line_numbers,
        )

    def list_recent(self, n: int = 5, shell: str | None = None) -> list[CommandLogEntry]:
        """Return up to ``n`` most recent entries, oldest first.

        Raises:
            ParameterError: If ``n`` is outside 1..100
        """
        if isinstance(n, bool) or not isinstance(n, int) or not 1 <= n <= MAX_RECENT_LOGS:
            raise ParameterError(
                f"n must be between 1 and {MAX_RECENT_LOGS}, got: {n}", parameter="n", value=n
            )
        return self.storage.list_logs(LogFilter(shell=shell))[-n:]

    def get_command_output(
        self,
        execution_id: str,
        start_line: int | None = None,
        end_line: int | None = None,
        search: str | None = None,
        max_lines: int | None = None,
        max_bytes: int | None = None,
    ) -> RetrievedOutput:
        """Return stored output bounded by both a line cap and a byte budget.

        Lines are first narrowed to ``start_line``..``end_line`` (negative
        values count from the end), then filtered by ``search``
        (case-insensitive regex). Requested caps above the configured ones are
        clamped. The response is assembled one line at a time; a line that
        would overflow the byte budget stops assembly.

        Raises:
            LogRetrievalError: Unknown id, bad range, bad pattern, no matches
            ParameterError: Non-positive caps
        """
        entry = self.get_entry(execution_id)
        lines = split_lines(entry.combined_output)
        total_lines = len(lines)

        start = 1 if start_line is None else start_line
        end = total_lines if end_line is None else end_line
        start, end = LineRangeProcessor.resolve_range(start, end, total_lines)
        LineRangeProcessor.validate_range(start, end, total_lines)
        lines = lines[start - 1 : end]

        if search:
            regex = compile_pattern(search, case_insensitive=True)
            lines = [line for line in lines if regex.search(line)]
            if not lines:
                raise LogRetrievalError(
                    f"No matches found for pattern: {search}",
                    error_type=LogErrorType.NO_MATCHES,
                    details={"pattern": search},
                )

        line_cap = self._clamp("max_lines", max_lines, self.config.max_return_lines)
        byte_cap = self._clamp("max_bytes", max_bytes, self.config.return_bytes_cap)

        truncated_by_lines = len(lines) > line_cap
        candidates = lines[:line_cap]
        header = [f"[Output truncated to {line_cap} lines of {len(lines)}]"] if truncated_by_lines else []

        buffer: list[str] = []
        used = 0
        returned = 0
        truncated_by_bytes = False

        def append(text: str) -> bool:
            nonlocal used
            chunk = len((text if not buffer else "\n" + text).encode("utf-8"))
            if used + chunk > byte_cap:
                return False
            used += chunk
            buffer.append(text)
            return True

        for text in header:
            if not append(text):
                truncated_by_bytes = True
                break

        if not truncated_by_bytes:
            for line in candidates:
                if not append(line):
                    truncated_by_bytes = True
                    break
                returned += 1

        if truncated_by_bytes and not buffer:
            # not even the header fit
            output_text = f"[Output truncated to fit {byte_cap} bytes]"
        else:
            output_text = "\n".join(buffer)

        file_path = entry.file_path if self.config.expose_full_path else None

        return RetrievedOutput(
            text=output_text,
            metadata={
                "execution_id": entry.id,
                "total_lines": total_lines,
                "returned_lines": returned,
                "was_truncated": truncated_by_lines or truncated_by_bytes,
                "truncated_by_lines": truncated_by_lines,
                "truncated_by_bytes": truncated_by_bytes,
                "command": entry.command,
                "shell": entry.shell,
                "exit_code": entry.exit_code,
                "file_path": file_path,
            },
        )

    @staticmethod
    def _clamp(name: str, requested: int | None, cap: int) -> int:
        if requested is None:
            return cap
        if isinstance(requested, bool) or not isinstance(requested, int) or requested < 1:
            raise ParameterError(
                f"{name} must be a positive integer, got: {requested}", parameter=name, value=requested
            )
        return min(requested, cap)
