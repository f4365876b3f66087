"""Unit tests for structured JSON logging system."""

import json
import logging
import time
from pathlib import Path

import pytest

from cmdgate.core.logger import CmdGateLogger, JSONFormatter


@pytest.fixture
def temp_log_dir(tmp_path):
    """Create temporary log directory."""
    log_dir = tmp_path / "logs"
    log_dir.mkdir()
    return log_dir


@pytest.fixture
def logger(temp_log_dir):
    """Create logger with temporary directory."""
    return CmdGateLogger(log_dir=str(temp_log_dir), level="DEBUG")


def read_log_lines(log_file):
    """Read and parse JSON log lines."""
    if not log_file.exists():
        return []

    lines = []
    with log_file.open() as f:
        for line in f:
            if line.strip():
                lines.append(json.loads(line))
    return lines


def flush(logger):
    for handler in logger._logger.handlers:
        handler.flush()


def test_logger_initialization(temp_log_dir):
    """Test logger initialization creates log directory and file."""
    logger = CmdGateLogger(log_dir=str(temp_log_dir))

    assert temp_log_dir.exists()
    assert logger.log_file.parent == temp_log_dir
    assert logger.log_file.name == "cmdgate.log"


def test_logger_default_directory(tmp_path, monkeypatch):
    """Test logger uses default ~/.cmdgate/logs directory."""
    fake_home = tmp_path / "fake_home"
    fake_home.mkdir()
    monkeypatch.setenv("HOME", str(fake_home))
    monkeypatch.delenv("CMDGATE_DISABLE_FILE_LOGGING", raising=False)

    logger = CmdGateLogger()

    expected_dir = Path("~/.cmdgate/logs").expanduser()
    assert logger.log_dir == expected_dir
    assert expected_dir.exists()


def test_file_logging_can_be_disabled(monkeypatch):
    """Test CMDGATE_DISABLE_FILE_LOGGING skips the file handler."""
    monkeypatch.setenv("CMDGATE_DISABLE_FILE_LOGGING", "1")

    logger = CmdGateLogger()

    assert logger.log_dir is None
    assert logger.log_file is None
    assert len(logger._logger.handlers) == 1


def test_info_logging(logger):
    """Test info level logging."""
    logger.info("Test message")
    flush(logger)

    lines = read_log_lines(logger.log_file)
    assert len(lines) == 1
    assert lines[0]["level"] == "INFO"
    assert lines[0]["message"] == "Test message"
    assert "timestamp" in lines[0]


def test_warn_logging(logger):
    """Test warning level logging."""
    logger.warn("Warning message")
    flush(logger)

    lines = read_log_lines(logger.log_file)
    assert len(lines) == 1
    assert lines[0]["level"] == "WARNING"


def test_structured_logging_with_kv_pairs(logger):
    """Test structured logging with key-value pairs."""
    logger.info("command_executed", shell="bash", exit_code=0)
    flush(logger)

    lines = read_log_lines(logger.log_file)
    assert lines[0]["message"] == "command_executed"
    assert lines[0]["shell"] == "bash"
    assert lines[0]["exit_code"] == 0


def test_log_level_filtering(logger):
    """Test log level filtering."""
    logger.set_level("ERROR")

    logger.debug("Debug message")
    logger.info("Info message")
    logger.warn("Warning message")
    logger.error("Error message")
    flush(logger)

    lines = read_log_lines(logger.log_file)
    assert len(lines) == 1
    assert lines[0]["level"] == "ERROR"


def test_log_level_from_env(temp_log_dir, monkeypatch):
    """Test log level configuration from CMDGATE_LOG_LEVEL environment variable."""
    monkeypatch.setenv("CMDGATE_LOG_LEVEL", "ERROR")

    logger = CmdGateLogger(log_dir=str(temp_log_dir))
    logger.info("Info message")
    logger.error("Error message")
    flush(logger)

    lines = read_log_lines(logger.log_file)
    assert len(lines) == 1
    assert lines[0]["level"] == "ERROR"


def test_warn_alias_sets_warning_level(logger):
    """Test WARN is accepted as an alias for WARNING."""
    logger.set_level("warn")

    assert logger._logger.level == logging.WARNING


def test_operation_context_manager(logger):
    """Test operation context manager with automatic timing."""
    with logger.operation("execute_command", shell="bash"):
        time.sleep(0.01)
    flush(logger)

    lines = read_log_lines(logger.log_file)
    assert len(lines) == 2
    assert lines[0]["message"] == "execute_command_start"
    assert lines[0]["shell"] == "bash"
    assert lines[1]["message"] == "execute_command_end"
    assert lines[1]["duration_ms"] > 0
    assert lines[1]["status"] == "ok"


def test_operation_context_manager_with_exception(logger):
    """Test operation context manager logs end even on exception."""
    with pytest.raises(ValueError), logger.operation("failing_operation"):
        raise ValueError("Test error")
    flush(logger)

    lines = read_log_lines(logger.log_file)
    assert [line["message"] for line in lines] == ["failing_operation_start", "failing_operation_end"]
    assert lines[1]["status"] == "failed"
    assert lines[1]["error_type"] == "ValueError"


def test_json_formatter_serializes_unknown_types():
    """Test formatter falls back to str() for non-JSON values."""
    record = logging.LogRecord("cmdgate", logging.INFO, __file__, 1, "stored", None, None)
    record.kv = {"path": Path("/tmp/x")}

    data = json.loads(JSONFormatter().format(record))

    assert data["message"] == "stored"
    assert data["path"] == "/tmp/x"


def test_debug_flag_overrides_level(temp_log_dir, monkeypatch):
    """Test CMDGATE_DEBUG forces DEBUG over CMDGATE_LOG_LEVEL."""
    monkeypatch.setenv("CMDGATE_LOG_LEVEL", "ERROR")
    monkeypatch.setenv("CMDGATE_DEBUG", "true")

    logger = CmdGateLogger(log_dir=str(temp_log_dir))

    assert logger._logger.level == logging.DEBUG


def test_json_formatter_clips_long_commands():
    """Test long string values are clipped and tagged with their length."""
    record = logging.LogRecord("cmdgate", logging.WARNING, __file__, 1, "command_rejected", None, None)
    record.kv = {"command": "x" * 50, "exit_code": 1}

    data = json.loads(JSONFormatter(max_value_chars=10).format(record))

    assert data["command"] == "xxxxxxxxxx... [50 chars]"
    assert data["exit_code"] == 1
