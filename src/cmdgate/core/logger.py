"""Structured JSON logging system.

All components log through CmdGateLogger so that executions, policy
rejections and best-effort storage faults end up in one JSON-lines stream.
"""

import json
import logging
import os
import time
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

# Longest string value kept in a record; user-supplied commands are clipped
# so one request cannot flood the log.
MAX_VALUE_CHARS = 2000


def env_flag(name: str) -> bool:
    """Return True when an environment variable is set to 1, true or yes."""
    return os.environ.get(name, "").lower() in ("1", "true", "yes")


class CmdGateLogger:
    """Structured JSON logger with rotation and timing utilities.

    Outputs JSON lines to ~/.cmdgate/logs/cmdgate.log with automatic rotation,
    plus a console handler on stderr.
    """

    log_dir: Path | None
    log_file: Path | None

    def __init__(
        self,
        log_dir: str | None = None,
        max_bytes: int = 10 * 1024 * 1024,  # 10MB
        backup_count: int = 5,
        level: str | None = None,
        name: str = "cmdgate",
    ) -> None:
        """Initialize logger with rotation.

        Args:
            log_dir: Directory for log files (defaults to ~/.cmdgate/logs/)
            max_bytes: Maximum size before rotation (default 10MB)
            backup_count: Number of backup files to keep (default 5)
            level: Log level (DEBUG/INFO/WARN/ERROR), reads from CMDGATE_LOG_LEVEL env if not
                provided. CMDGATE_DEBUG forces DEBUG either way.
            name: Name of the underlying stdlib logger
        """
        disable_file_logging = env_flag("CMDGATE_DISABLE_FILE_LOGGING")

        self._logger = logging.getLogger(name)
        self._logger.setLevel(logging.DEBUG)
        self._logger.propagate = False

        for handler in self._logger.handlers[:]:
            handler.close()
            self._logger.removeHandler(handler)

        if not disable_file_logging:
            if log_dir is None:
                self.log_dir = Path("~/.cmdgate/logs").expanduser()
            else:
                self.log_dir = Path(log_dir)

            self.log_dir.mkdir(parents=True, exist_ok=True)
            self.log_file = self.log_dir / "cmdgate.log"

            file_handler = RotatingFileHandler(
                self.log_file,
                maxBytes=max_bytes,
                backupCount=backup_count,
            )
            file_handler.setFormatter(JSONFormatter())
            self._logger.addHandler(file_handler)
        else:
            self.log_dir = None
            self.log_file = None

        # stdout is reserved for command results
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(JSONFormatter())
        self._logger.addHandler(console_handler)

        log_level = level or os.environ.get("CMDGATE_LOG_LEVEL", "WARNING")
        if env_flag("CMDGATE_DEBUG"):
            log_level = "DEBUG"
        self.set_level(log_level)

    def set_level(self, level: str) -> None:
        """Set logging level.

        Args:
            level: One of DEBUG, INFO, WARN/WARNING, ERROR
        """
        level_upper = level.upper()
        if level_upper == "WARN":
            level_upper = "WARNING"

        numeric_level = getattr(logging, level_upper, logging.INFO)
        self._logger.setLevel(numeric_level)

    def debug(self, msg: str, **kv: Any) -> None:
        """Log debug message with optional key-value pairs."""
        self._logger.debug(msg, extra={"kv": kv})

    def info(self, msg: str, **kv: Any) -> None:
        """Log info message with optional key-value pairs."""
        self._logger.info(msg, extra={"kv": kv})

    def warn(self, msg: str, **kv: Any) -> None:
        """Log warning message with optional key-value pairs."""
        self._logger.warning(msg, extra={"kv": kv})

    def error(self, msg: str, **kv: Any) -> None:
        """Log error message with optional key-value pairs."""
        self._logger.error(msg, extra={"kv": kv})

    @contextmanager
    def operation(self, operation_name: str, **kv: Any) -> Iterator[None]:
        """Context manager for operation timing.

        Logs ``<operation_name>_start`` on entry and ``<operation_name>_end``
        with ``duration_ms`` and ``status`` on exit. When the block raises,
        ``status`` is ``"failed"`` and ``error_type`` names the exception class;
        the exception itself propagates unchanged.

        Example:
            with logger.operation("execute_command", shell="bash"):
                ...
        """
        start_time = time.monotonic()
        self.debug(f"{operation_name}_start", **kv)

        try:
            yield
        except BaseException as e:
            duration_ms = (time.monotonic() - start_time) * 1000
            self.debug(
                f"{operation_name}_end",
                duration_ms=duration_ms,
                status="failed",
                error_type=type(e).__name__,
                **kv,
            )
            raise

        duration_ms = (time.monotonic() - start_time) * 1000
        self.debug(f"{operation_name}_end", duration_ms=duration_ms, status="ok", **kv)


class JSONFormatter(logging.Formatter):
    """Formats log records as JSON lines.

    String values longer than ``max_value_chars`` are clipped and tagged with
    their original length.
    """

    def __init__(self, max_value_chars: int = MAX_VALUE_CHARS) -> None:
        super().__init__()
        self.max_value_chars = max_value_chars

    def _clip(self, value: Any) -> Any:
        if isinstance(value, str) and len(value) > self.max_value_chars:
            return f"{value[: self.max_value_chars]}... [{len(value)} chars]"
        return value

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        dt = datetime.fromtimestamp(record.created, tz=UTC)
        timestamp = dt.strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"

        log_data = {
            "timestamp": timestamp,
            "level": record.levelname,
            "message": record.getMessage(),
        }

        if hasattr(record, "kv") and record.kv:
            log_data.update({key: self._clip(value) for key, value in record.kv.items()})

        return json.dumps(log_data, default=str)
