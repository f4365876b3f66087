"""Regex search over stored output, one occurrence at a time."""

import re
from dataclasses import dataclass

from cmdgate.core.exceptions import LogErrorType, LogRetrievalError
from cmdgate.logs.truncation import split_lines

MAX_CONTEXT_LINES = 20
DEFAULT_CONTEXT_LINES = 3


@dataclass(frozen=True)
class SearchResult:
    """A single occurrence with its surrounding context."""

    occurrence: int
    total_occurrences: int
    line_number: int
    before: list[str]
    match_line: str
    after: list[str]
    text: str


def compile_pattern(pattern: str, case_insensitive: bool = False) -> re.Pattern[str]:
    """Compile a search pattern.

    Raises:
        LogRetrievalError: INVALID_SEARCH when the pattern is not a valid regex
    """
    if not pattern:
        raise LogRetrievalError(
            "Search pattern must not be empty",
            error_type=LogErrorType.INVALID_SEARCH,
            details={"pattern": pattern},
        )
    try:
        return re.compile(pattern, re.IGNORECASE if case_insensitive else 0)
    except re.error as e:
        raise LogRetrievalError(
            f"Invalid regex pattern: {e}",
            error_type=LogErrorType.INVALID_SEARCH,
            details={"pattern": pattern},
        ) from e


class SearchProcessor:
    """Finds pattern matches line by line and renders one with context."""

    @staticmethod
    def find_matches(lines: list[str], regex: re.Pattern[str]) -> list[int]:
        """Return the 1-based line numbers of matching lines."""
        return [i + 1 for i, line in enumerate(lines) if regex.search(line)]

    @classmethod
    def count_matches(cls, output: str, pattern: str, case_insensitive: bool = False) -> int:
        """Count matching lines without rendering anything."""
        regex = compile_pattern(pattern, case_insensitive)
        return len(cls.find_matches(split_lines(output), regex))

    @classmethod
    def search(
        cls,
        output: str,
        pattern: str,
        occurrence: int = 1,
        context_lines: int = DEFAULT_CONTEXT_LINES,
        case_insensitive: bool = False,
        line_numbers: bool = False,
    ) -> SearchResult:
        """Return occurrence ``occurrence`` (1-based) of ``pattern`` with context.

        Raises:
            LogRetrievalError: INVALID_SEARCH for a bad pattern or context size,
                NO_MATCHES when nothing matches, INVALID_OCCURRENCE when the
                occurrence index is out of range
        """
        if not 0 <= context_lines <= MAX_CONTEXT_LINES:
            raise LogRetrievalError(
                f"context must be between 0 and {MAX_CONTEXT_LINES}, got {context_lines}",
                error_type=LogErrorType.INVALID_SEARCH,
                details={"context": context_lines},
            )

        regex = compile_pattern(pattern, case_insensitive)
        lines = split_lines(output)
        matches = cls.find_matches(lines, regex)

        if not matches:
            raise LogRetrievalError(
                f"No matches found for pattern: {pattern}",
                error_type=LogErrorType.NO_MATCHES,
                details={"pattern": pattern, "case_insensitive": case_insensitive},
            )

        total = len(matches)
        if not 1 <= occurrence <= total:
            raise LogRetrievalError(
                f"Occurrence {occurrence} out of range (1-{total})",
                error_type=LogErrorType.INVALID_OCCURRENCE,
                details={"occurrence": occurrence, "total": total},
            )

        line_number = matches[occurrence - 1]
        index = line_number - 1
        before = lines[max(0, index - context_lines) : index]
        after = lines[index + 1 : index + 1 + context_lines]
        match_line = lines[index]

        parts = [
            f'Search: "{pattern}" found {total} occurrence(s)',
            f"Showing occurrence {occurrence} of {total} at line {line_number}:",
            "",
        ]
        first_before = line_number - len(before)
        if line_numbers:
            parts.extend(f"{first_before + i}: {line}" for i, line in enumerate(before))
            parts.append(f">>> {line_number}: {match_line} <<<")
            parts.extend(f"{line_number + 1 + i}: {line}" for i, line in enumerate(after))
        else:
            parts.extend(before)
            parts.append(f">>> {match_line} <<<")
            parts.extend(after)

        if occurrence < total:
            parts.extend(["", f"To see next match, use occurrence={occurrence + 1}"])

        return SearchResult(
            occurrence=occurrence,
            total_occurrences=total,
            line_number=line_number,
            before=before,
            match_line=match_line,
            after=after,
            text="\n".join(parts),
        )
