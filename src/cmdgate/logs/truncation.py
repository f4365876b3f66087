"""Tail truncation of command output.

The immediate response to an execution shows only the last N lines; the tail
carries the failure signal. A banner above the output says how many lines
were dropped and how to get them back.
"""

from dataclasses import dataclass

from cmdgate.core.config import DEFAULT_TRUNCATION_MESSAGE, LoggingConfig

FALLBACK_MAX_OUTPUT_LINES = 20


def normalize_newlines(text: str) -> str:
    """Convert CRLF line endings to LF."""
    return text.replace("\r\n", "\n")


def split_lines(text: str) -> list[str]:
    """Split text into lines.

    A single trailing newline terminates the last line rather than starting an
    empty one, so ``"a\\nb\\n"`` has two lines. Empty text has none.
    """
    if not text:
        return []
    lines = text.split("\n")
    if lines[-1] == "":
        lines.pop()
    return lines


def count_lines(text: str) -> int:
    return len(split_lines(text))


@dataclass(frozen=True)
class TruncatedOutput:
    """Response-sized view of an output. Never persisted."""

    output: str
    was_truncated: bool
    total_lines: int
    returned_lines: int
    message: str | None = None


def resolve_max_output_lines(
    per_call: int | None,
    shell_default: int | None = None,
    global_default: int | None = None,
) -> int:
    """Pick the effective line limit: per-call, then shell, then global, then 20."""
    for candidate in (per_call, shell_default, global_default):
        if candidate is not None:
            return candidate
    return FALLBACK_MAX_OUTPUT_LINES


def build_truncation_message(
    omitted_lines: int,
    total_lines: int,
    returned_lines: int,
    execution_id: str | None = None,
    template: str | None = None,
    file_path: str | None = None,
    expose_full_path: bool = False,
) -> str:
    """Build the banner placed above truncated output.

    The template understands ``{omitted_lines}``, ``{total_lines}`` and
    ``{returned_lines}`` (camelCase spellings are accepted too). The banner
    then names the omitted line count and either the log file path (when it
    is known and may be exposed) or the execution id to retrieve with.
    """
    message = template or DEFAULT_TRUNCATION_MESSAGE
    replacements = {
        "omitted_lines": omitted_lines,
        "total_lines": total_lines,
        "returned_lines": returned_lines,
        "omittedLines": omitted_lines,
        "totalLines": total_lines,
        "returnedLines": returned_lines,
    }
    for key, value in replacements.items():
        message = message.replace("{" + key + "}", str(value))

    parts = [message, f"[{omitted_lines} lines omitted]"]
    if file_path and expose_full_path:
        parts.append(f"[Full log saved to: {file_path}]")
    elif execution_id:
        parts.append(f"[Access full output with get_command_output, execution_id: {execution_id}]")

    return "\n".join(parts)


def truncate_output(
    output: str,
    max_lines: int,
    config: LoggingConfig | None = None,
    execution_id: str | None = None,
    file_path: str | None = None,
    expose_full_path: bool = False,
) -> TruncatedOutput:
    """Keep the last ``max_lines`` lines of ``output``.

    Args:
        output: Full combined output
        max_lines: Effective line limit
        config: Logging configuration (truncation switch and banner template)
        execution_id: Retrieval handle of the stored entry, if any
        file_path: Disk-tier path of the stored entry, if already written
        expose_full_path: Whether the banner may show ``file_path``

    Returns:
        TruncatedOutput; ``message`` is None when nothing was cut
    """
    output = normalize_newlines(output)
    lines = split_lines(output)
    total_lines = len(lines)
    enabled = config.enable_truncation if config is not None else True

    if not enabled or total_lines <= max_lines:
        return TruncatedOutput(
            output=output,
            was_truncated=False,
            total_lines=total_lines,
            returned_lines=total_lines,
        )

    tail = "\n".join(lines[-max_lines:])
    omitted = total_lines - max_lines
    message = build_truncation_message(
        omitted,
        total_lines,
        max_lines,
        execution_id=execution_id,
        template=config.truncation_message if config is not None else None,
        file_path=file_path,
        expose_full_path=expose_full_path,
    )

    return TruncatedOutput(
        output=tail,
        was_truncated=True,
        total_lines=total_lines,
        returned_lines=max_lines,
        message=message,
    )


def format_truncated_output(truncated: TruncatedOutput) -> str:
    """Render the banner (if any) above the output."""
    if not truncated.was_truncated or not truncated.message:
        return truncated.output
    return f"{truncated.message}\n\n{truncated.output}"
