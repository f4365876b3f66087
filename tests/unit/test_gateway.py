"""Tests for the command gateway."""

import os
from unittest.mock import AsyncMock, MagicMock, Mock

import pytest

from cmdgate.core.command_executor import CommandExecutor, CommandResult
from cmdgate.core.config import (
    ExecutableSpec,
    GatewayConfig,
    LoggingConfig,
    PathSettings,
    SecurityLimits,
    ShellDefinition,
    WslSettings,
)
from cmdgate.core.exceptions import (
    E_PERMISSIONS,
    E_TIMEOUT,
    E_UNSAFE,
    CommandExecutionError,
    LogErrorType,
    LogRetrievalError,
    ParameterError,
    PolicyViolationError,
)
from cmdgate.core.gateway import CommandGateway, check_int_parameter
from cmdgate.core.logger import CmdGateLogger
from cmdgate.core.shells import CHAIN_RUNNER_SCRIPT


def numbered(n: int) -> str:
    return "".join(f"line {i}\n" for i in range(1, n + 1))


def make_executor(stdout: str = "", stderr: str = "", exit_code: int = 0) -> Mock:
    executor = Mock(spec=CommandExecutor)
    executor.execute_command = AsyncMock(
        return_value=CommandResult(stdout=stdout, stderr=stderr, exit_code=exit_code, duration_ms=5)
    )
    executor.get_name.return_value = "mock"
    return executor


def make_gateway(
    root,
    executor=None,
    logging=LoggingConfig(),
    shell_max_lines=None,
    initial_dir=True,
    **security,
) -> CommandGateway:
    config = GatewayConfig(
        security=SecurityLimits(**security),
        paths=PathSettings(
            allowed_paths=(str(root),), initial_dir=str(root) if initial_dir else None
        ),
        logging=logging,
        shells={
            "bash": ShellDefinition(
                type="bash",
                executable=ExecutableSpec("bash", ("-c",)),
                max_output_lines=shell_max_lines,
            ),
            "off": ShellDefinition(type="bash", executable=ExecutableSpec("bash"), enabled=False),
        },
    )
    return CommandGateway(
        config, executor=executor or make_executor("hello\n"), logger=MagicMock(spec=CmdGateLogger)
    )


class TestCheckIntParameter:
    """Test integer parameter validation."""

    def test_valid(self):
        assert check_int_parameter("timeout", 5, 1, 10) == 5

    @pytest.mark.parametrize(
        ("value", "message"),
        [
            ("5", "timeout must be an integer, got: '5'"),
            (True, "timeout must be an integer, got: True"),
            (0, "timeout must be at least 1, got: 0"),
            (11, "timeout must be at most 10, got: 11"),
        ],
    )
    def test_invalid(self, value, message):
        with pytest.raises(ParameterError) as exc_info:
            check_int_parameter("timeout", value, 1, 10)
        assert exc_info.value.message == message


class TestShells:
    """Test shell lookup."""

    def test_only_enabled_shells(self, tmp_path):
        gateway = make_gateway(tmp_path)
        assert gateway.enabled_shells() == ["bash"]

    def test_unknown_shell(self, tmp_path):
        gateway = make_gateway(tmp_path)
        with pytest.raises(ParameterError, match="Invalid shell: 'off'"):
            gateway.shell_config("off")

    def test_security_summary(self, tmp_path):
        summary = make_gateway(tmp_path, command_timeout=9).security_summary()
        assert summary["bash"]["command_timeout"] == 9
        assert summary["bash"]["executable"] == ["bash", "-c"]
        assert summary["bash"]["allowed_paths"] == [str(tmp_path)]


class TestExecute:
    """Test the execute pipeline."""

    @pytest.mark.asyncio
    async def test_success(self, tmp_path):
        executor = make_executor("hello\n")
        gateway = make_gateway(tmp_path, executor=executor)

        async with gateway:
            result = await gateway.execute("bash", "echo hello")

        assert result.output == "hello\n"
        assert result.is_error is False
        assert result.metadata["exit_code"] == 0
        assert result.metadata["shell"] == "bash"
        assert result.metadata["working_directory"] == str(tmp_path)
        assert result.metadata["execution_id"]
        assert result.metadata["was_truncated"] is False

        argv, cwd, env, timeout = executor.execute_command.await_args.args
        assert argv == ["bash", "-c", CHAIN_RUNNER_SCRIPT, "bash", "echo", "hello"]
        assert cwd == str(tmp_path)
        assert env["PATH"] == os.environ["PATH"]
        assert timeout == 30

    @pytest.mark.asyncio
    async def test_chain_passed_as_validated_tokens(self, tmp_path):
        (tmp_path / "sub").mkdir()
        executor = make_executor()
        gateway = make_gateway(tmp_path, executor=executor)

        async with gateway:
            await gateway.execute("bash", 'cd sub && grep -r "$HOME" .')

        argv = executor.execute_command.await_args.args[0]
        assert argv[3:] == ["bash", "cd", "sub", "&&", "grep", "-r", "$HOME", "."]

    @pytest.mark.asyncio
    async def test_wsl_uses_normalized_directory(self, tmp_path):
        executor = make_executor("ok")
        config = GatewayConfig(
            paths=PathSettings(allowed_paths=("C:\\work",)),
            shells={
                "wsl": ShellDefinition(
                    type="wsl", executable=ExecutableSpec("wsl.exe", ("-e",)), wsl=WslSettings()
                )
            },
        )
        gateway = CommandGateway(config, executor=executor, logger=MagicMock(spec=CmdGateLogger))

        async with gateway:
            result = await gateway.execute("wsl", "ls -la", working_dir="C:\\work")
            entry = gateway.storage.get_log(result.metadata["execution_id"])

        argv, cwd, env, _ = executor.execute_command.await_args.args
        assert argv == ["wsl.exe", "-e", "ls", "-la"]
        assert cwd == "C:\\work"
        assert env["WSL_ORIGINAL_PATH"] == "/mnt/c/work"
        assert result.metadata["working_directory"] == "/mnt/c/work"
        assert entry.working_directory == "/mnt/c/work"

    @pytest.mark.asyncio
    async def test_per_call_timeout(self, tmp_path):
        executor = make_executor("x")
        gateway = make_gateway(tmp_path, executor=executor)

        async with gateway:
            await gateway.execute("bash", "true", timeout=3)

        assert executor.execute_command.await_args.args[3] == 3

    @pytest.mark.asyncio
    async def test_non_zero_exit(self, tmp_path):
        gateway = make_gateway(tmp_path, executor=make_executor(stderr="boom\n", exit_code=2))

        async with gateway:
            result = await gateway.execute("bash", "false")

        assert result.is_error is True
        assert result.output == "Command failed with exit code 2\nError output:\nboom\n"
        assert result.metadata["exit_code"] == 2

    @pytest.mark.asyncio
    async def test_empty_output_placeholder(self, tmp_path):
        gateway = make_gateway(tmp_path, executor=make_executor())

        async with gateway:
            result = await gateway.execute("bash", "true")

        assert result.output == "Command completed successfully (no output)"

    @pytest.mark.asyncio
    async def test_global_limit_truncates_tail(self, tmp_path):
        gateway = make_gateway(tmp_path, executor=make_executor(numbered(50)))

        async with gateway:
            result = await gateway.execute("bash", "seq 50")

        banner, body = result.output.split("\n\n", 1)
        assert "[30 lines omitted]" in banner
        assert f"execution_id: {result.metadata['execution_id']}" in banner
        assert body.split("\n")[0] == "line 31"
        assert body.split("\n")[-1] == "line 50"
        assert result.metadata["total_lines"] == 50
        assert result.metadata["returned_lines"] == 20
        assert result.metadata["was_truncated"] is True

    @pytest.mark.asyncio
    async def test_per_call_limit_overrides_global(self, tmp_path):
        gateway = make_gateway(tmp_path, executor=make_executor(numbered(60)))

        async with gateway:
            result = await gateway.execute("bash", "seq 60", max_output_lines=100)

        assert result.output == numbered(60)
        assert result.metadata["returned_lines"] == 60

    @pytest.mark.asyncio
    async def test_shell_limit_used_without_per_call(self, tmp_path):
        gateway = make_gateway(tmp_path, executor=make_executor(numbered(60)), shell_max_lines=5)

        async with gateway:
            result = await gateway.execute("bash", "seq 60")

        assert result.metadata["returned_lines"] == 5

    @pytest.mark.asyncio
    async def test_full_output_retrievable_after_truncation(self, tmp_path):
        gateway = make_gateway(tmp_path, executor=make_executor(numbered(50)))

        async with gateway:
            result = await gateway.execute("bash", "seq 50")
            retrieved = gateway.get_command_output(result.metadata["execution_id"])

        assert retrieved.metadata["returned_lines"] == 50
        assert retrieved.text.startswith("line 1\n")

    @pytest.mark.asyncio
    async def test_without_logging(self, tmp_path):
        gateway = make_gateway(tmp_path, executor=make_executor(numbered(50)), logging=None)

        async with gateway:
            result = await gateway.execute("bash", "seq 50")

        assert result.metadata["execution_id"] is None
        assert result.metadata["was_truncated"] is False
        assert result.output == numbered(50)


class TestParameterErrors:
    """Test request parameter checks."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("kwargs", "parameter"),
        [
            ({"shell": "zsh"}, "shell"),
            ({"command": "   "}, "command"),
            ({"timeout": 0}, "timeout"),
            ({"timeout": 3601}, "timeout"),
            ({"max_output_lines": 10001}, "max_output_lines"),
            ({"max_output_lines": True}, "max_output_lines"),
        ],
    )
    async def test_rejected_before_execution(self, tmp_path, kwargs, parameter):
        executor = make_executor()
        gateway = make_gateway(tmp_path, executor=executor)
        request = {"shell": "bash", "command": "ls", **kwargs}

        async with gateway:
            with pytest.raises(ParameterError) as exc_info:
                await gateway.execute(**request)

        assert exc_info.value.metadata["parameter"] == parameter
        executor.execute_command.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_no_working_directory(self, tmp_path, monkeypatch):
        allowed = tmp_path / "allowed"
        allowed.mkdir()
        monkeypatch.chdir(tmp_path)
        gateway = make_gateway(allowed, initial_dir=False)

        assert gateway.get_current_directory() is None
        async with gateway:
            with pytest.raises(ParameterError, match="No working directory"):
                await gateway.execute("bash", "ls")


class TestPolicyRejections:
    """Test that rejected requests never reach the executor."""

    @pytest.mark.asyncio
    async def test_blocked_command_recorded(self, tmp_path):
        executor = make_executor()
        gateway = make_gateway(tmp_path, executor=executor)

        async with gateway:
            with pytest.raises(PolicyViolationError) as exc_info:
                await gateway.execute("bash", "shutdown now")

            error = exc_info.value
            entry = gateway.storage.get_log(error.metadata["execution_id"])

        executor.execute_command.assert_not_awaited()
        assert error.error_code == E_UNSAFE
        assert error.kind == "blocked_command"
        assert entry.exit_code == -1
        assert entry.stderr == 'Validation error: Command is blocked for bash: "shutdown"'

    @pytest.mark.asyncio
    async def test_cd_out_of_allow_list(self, tmp_path):
        allowed = tmp_path / "allowed"
        allowed.mkdir()
        executor = make_executor()
        gateway = make_gateway(allowed, executor=executor)

        async with gateway:
            with pytest.raises(PolicyViolationError) as exc_info:
                await gateway.execute("bash", f"cd {allowed} && cd ..")

        executor.execute_command.assert_not_awaited()
        assert exc_info.value.error_code == E_PERMISSIONS
        assert exc_info.value.metadata["step"] == "cd .."

    @pytest.mark.asyncio
    @pytest.mark.parametrize("command", ["cd && pwd", "cd ~ && pwd", "cd $HOME && pwd", "cd - && pwd"])
    async def test_shell_resolved_cd_target(self, tmp_path, command):
        executor = make_executor()
        gateway = make_gateway(tmp_path, executor=executor)

        async with gateway:
            with pytest.raises(PolicyViolationError) as exc_info:
                await gateway.execute("bash", command)

        executor.execute_command.assert_not_awaited()
        assert exc_info.value.error_code == E_PERMISSIONS
        assert exc_info.value.kind == "invalid_path"
        assert exc_info.value.metadata["step"] == command.split(" && ")[0]

    @pytest.mark.asyncio
    async def test_working_directory_outside(self, tmp_path):
        allowed = tmp_path / "allowed"
        allowed.mkdir()
        gateway = make_gateway(allowed)

        async with gateway:
            with pytest.raises(PolicyViolationError) as exc_info:
                await gateway.execute("bash", "ls", working_dir=str(tmp_path))

        assert exc_info.value.error_code == E_PERMISSIONS
        assert exc_info.value.kind == "directory_not_allowed"

    @pytest.mark.asyncio
    async def test_unrestricted_directory(self, tmp_path):
        executor = make_executor("ok")
        gateway = make_gateway(tmp_path / "allowed", executor=executor, restrict_working_directory=False)

        async with gateway:
            result = await gateway.execute("bash", "ls", working_dir="/")

        assert result.metadata["working_directory"] == "/"

    @pytest.mark.asyncio
    async def test_rejection_without_logging(self, tmp_path):
        gateway = make_gateway(tmp_path, logging=None)

        async with gateway:
            with pytest.raises(PolicyViolationError) as exc_info:
                await gateway.execute("bash", "ls | wc")

        assert "execution_id" not in exc_info.value.metadata


class TestExecutionFailures:
    """Test executor failures."""

    @pytest.mark.asyncio
    async def test_timeout(self, tmp_path):
        executor = make_executor()
        executor.execute_command.side_effect = TimeoutError("Command timed out after 1 seconds")
        gateway = make_gateway(tmp_path, executor=executor)

        async with gateway:
            with pytest.raises(CommandExecutionError) as exc_info:
                await gateway.execute("bash", "sleep 10", timeout=1)
            stored = gateway.storage.get_stats().total_logs

        assert exc_info.value.reason == "timeout"
        assert exc_info.value.error_code == E_TIMEOUT
        assert stored == 0

    @pytest.mark.asyncio
    async def test_spawn_failure(self, tmp_path):
        executor = make_executor()
        executor.execute_command.side_effect = OSError("Failed to execute command: no such file")
        gateway = make_gateway(tmp_path, executor=executor)

        async with gateway:
            with pytest.raises(CommandExecutionError) as exc_info:
                await gateway.execute("bash", "ls")

        assert exc_info.value.reason == "spawn"


class TestLogAccess:
    """Test retrieval through the gateway."""

    @pytest.mark.asyncio
    async def test_read_log_modes(self, tmp_path):
        gateway = make_gateway(tmp_path, executor=make_executor(numbered(10)))

        async with gateway:
            eid = (await gateway.execute("bash", "seq 10")).metadata["execution_id"]

            assert gateway.read_log(eid) == numbered(10)
            assert gateway.read_log(eid, start=-2).startswith("Lines 9-10 of 10:")
            assert gateway.read_log(eid, end=2) == "Lines 1-2 of 10:\n\n1: line 1\n2: line 2"
            assert ">>> 5: line 5 <<<" in gateway.read_log(eid, search="line 5", context_lines=0)

    @pytest.mark.asyncio
    async def test_list_recent_logs(self, tmp_path):
        gateway = make_gateway(tmp_path, executor=make_executor("x"))

        async with gateway:
            await gateway.execute("bash", "echo 1")
            await gateway.execute("bash", "echo 2")
            recent = gateway.list_recent_logs(1)

        assert [r["command"] for r in recent] == ["echo 2"]

    def test_logs_disabled(self, tmp_path):
        gateway = make_gateway(tmp_path, logging=None)

        with pytest.raises(LogRetrievalError) as exc_info:
            gateway.get_command_output("x")
        assert exc_info.value.error_type == LogErrorType.LOGS_DISABLED

    def test_log_resources_disabled(self, tmp_path):
        gateway = make_gateway(tmp_path, logging=LoggingConfig(enable_log_resources=False))

        with pytest.raises(LogRetrievalError) as exc_info:
            gateway.read_log("x")
        assert exc_info.value.error_type == LogErrorType.LOGS_DISABLED


class TestDirectories:
    """Test current directory handling."""

    def test_initial_directory(self, tmp_path):
        assert make_gateway(tmp_path).get_current_directory() == str(tmp_path)

    def test_set_current_directory(self, tmp_path):
        sub = tmp_path / "sub"
        sub.mkdir()
        gateway = make_gateway(tmp_path)

        assert gateway.set_current_directory(str(sub)) == str(sub)
        assert gateway.get_current_directory() == str(sub)

    def test_set_missing_directory(self, tmp_path):
        gateway = make_gateway(tmp_path)
        with pytest.raises(ParameterError, match="does not exist"):
            gateway.set_current_directory(str(tmp_path / "missing"))

    def test_set_directory_outside_allow_list(self, tmp_path):
        allowed = tmp_path / "allowed"
        allowed.mkdir()
        gateway = make_gateway(allowed)

        with pytest.raises(PolicyViolationError):
            gateway.set_current_directory(str(tmp_path))
        assert gateway.get_current_directory() == str(allowed)

    def test_validate_directories(self, tmp_path):
        allowed = tmp_path / "allowed"
        gateway = make_gateway(allowed)

        report = gateway.validate_directories([str(allowed / "x"), "/etc"])

        assert report["valid"] == [str(allowed / "x")]
        assert report["invalid"][0]["directory"] == "/etc"
        assert "not within allowed paths for bash" in report["invalid"][0]["reason"]

    def test_validate_directories_empty(self, tmp_path):
        with pytest.raises(ParameterError):
            make_gateway(tmp_path).validate_directories([])


class TestLifecycle:
    """Test start and shutdown."""

    @pytest.mark.asyncio
    async def test_context_manager_starts_and_stops_cleanup(self, tmp_path):
        gateway = make_gateway(tmp_path)

        async with gateway:
            assert gateway.storage.cleanup_running
            await gateway.execute("bash", "echo hi")

        assert not gateway.storage.cleanup_running
        assert gateway.storage.get_stats().total_logs == 0

    @pytest.mark.asyncio
    async def test_execute_starts_cleanup_lazily(self, tmp_path):
        gateway = make_gateway(tmp_path)

        await gateway.execute("bash", "echo hi")

        assert gateway.storage.cleanup_running
        await gateway.shutdown()

    def test_warns_when_command_logs_go_to_disk(self, tmp_path):
        gateway = make_gateway(tmp_path, logging=LoggingConfig(log_directory=str(tmp_path / "logs")))

        gateway.logger.warn.assert_any_call(
            "command_logs_on_disk",
            log_directory=str(gateway.storage.log_directory),
            note="log files may contain sensitive command output",
        )

    def test_no_disk_warning_for_memory_only_logs(self, tmp_path):
        gateway = make_gateway(tmp_path)

        gateway.logger.warn.assert_not_called()
