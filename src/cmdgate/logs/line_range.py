"""Line range queries over stored output."""

from cmdgate.core.exceptions import LogErrorType, LogRetrievalError
from cmdgate.logs.truncation import split_lines


class LineRangeProcessor:
    """Processes line range queries with support for negative indices.

    Line numbers are 1-based. A negative endpoint counts from the end:
    ``-1`` is the last line, ``-2`` the one before it.
    """

    @staticmethod
    def resolve_range(start: int, end: int, total_lines: int) -> tuple[int, int]:
        """Resolve negative endpoints to positive line numbers."""
        actual_start = total_lines + start + 1 if start < 0 else start
        actual_end = total_lines + end + 1 if end < 0 else end
        return actual_start, actual_end

    @staticmethod
    def validate_range(start: int, end: int, total_lines: int) -> None:
        """Check resolved endpoints against the output.

        Raises:
            LogRetrievalError: INVALID_RANGE for any bound violation
        """
        if start < 1:
            raise LogRetrievalError(
                f"Start line must be >= 1, got {start}",
                error_type=LogErrorType.INVALID_RANGE,
                details={"start": start, "total_lines": total_lines},
            )
        if end > total_lines:
            raise LogRetrievalError(
                f"End line {end} exceeds total lines {total_lines}",
                error_type=LogErrorType.INVALID_RANGE,
                details={"end": end, "total_lines": total_lines},
            )
        if start > end:
            raise LogRetrievalError(
                f"Start line {start} must be <= end line {end}",
                error_type=LogErrorType.INVALID_RANGE,
                details={"start": start, "end": end},
            )

    @classmethod
    def select_lines(cls, output: str, start: int, end: int) -> tuple[list[str], int, int, int]:
        """Return the selected lines plus resolved start, end and total line count."""
        lines = split_lines(output)
        total = len(lines)
        actual_start, actual_end = cls.resolve_range(start, end, total)
        cls.validate_range(actual_start, actual_end, total)
        return lines[actual_start - 1 : actual_end], actual_start, actual_end, total

    @classmethod
    def process_range(
        cls,
        output: str,
        start: int,
        end: int,
        line_numbers: bool = False,
        max_lines: int | None = None,
    ) -> str:
        """Format lines ``start``..``end`` of ``output`` under a header.

        Args:
            output: Full output text
            start: Start line (1-based, negative allowed)
            end: End line (1-based, negative allowed)
            line_numbers: Prefix each line with ``N: ``
            max_lines: Reject ranges longer than this

        Returns:
            ``Lines a-b of N:``, a blank line, then the selected lines

        Raises:
            LogRetrievalError: INVALID_RANGE for bad bounds or an oversized range
        """
        selected, actual_start, actual_end, total = cls.select_lines(output, start, end)

        if max_lines is not None and len(selected) > max_lines:
            raise LogRetrievalError(
                f"Range exceeds maximum line limit of {max_lines}",
                error_type=LogErrorType.INVALID_RANGE,
                details={"requested_lines": len(selected), "max_lines": max_lines},
            )

        parts = [f"Lines {actual_start}-{actual_end} of {total}:", ""]
        if line_numbers:
            parts.extend(f"{actual_start + i}: {line}" for i, line in enumerate(selected))
        else:
            parts.extend(selected)
        return "\n".join(parts)
