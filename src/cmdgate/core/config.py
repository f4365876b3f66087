"""Configuration system for cmdgate.

Provides configuration loading, merging, and validation with precedence:
1. Environment variables (highest)
2. Config file (explicit path, ./cmdgate.json or ~/.cmdgate/config.json)
3. Defaults (lowest)

The gateway never reads these mutable dataclasses directly. Each enabled shell
is resolved once into a frozen ResolvedShellConfig snapshot.
"""

import json
import os
import re
import sys
from dataclasses import asdict, dataclass, field, fields, replace
from enum import Enum
from pathlib import Path
from typing import Any

from cmdgate.core.exceptions import ConfigurationError
from cmdgate.security.paths import DEFAULT_MOUNT_POINT, is_windows_path, windows_to_wsl

DEFAULT_TRUNCATION_MESSAGE = (
    "[Output truncated: Showing last {returned_lines} of {total_lines} lines]"
)

DEFAULT_BLOCKED_COMMANDS = (
    "format",
    "shutdown",
    "restart",
    "reg",
    "regedit",
    "net",
    "netsh",
    "takeown",
    "icacls",
)

DEFAULT_BLOCKED_ARGUMENTS = (
    "--exec",
    "-e",
    "/c",
    "-enc",
    "-encodedcommand",
    "-command",
    "--interactive",
    "-i",
    "--login",
    "--system",
)

DEFAULT_BLOCKED_OPERATORS = ("&", "|", ";", "`")

MAX_OUTPUT_LINES_LIMIT = 10000
# Smallest per-entry budget that still keeps output next to the storage
# overhead and truncation markers.
MIN_LOG_SIZE = 512
MAX_TIMEOUT_SECONDS = 3600


class ShellKind(str, Enum):
    """Dialect families a shell type belongs to."""

    NATIVE_WINDOWS = "native-windows"
    GIT_BASH = "git-bash"
    WSL = "wsl"
    UNIX = "unix"


SHELL_TYPE_KINDS: dict[str, ShellKind] = {
    "cmd": ShellKind.NATIVE_WINDOWS,
    "powershell": ShellKind.NATIVE_WINDOWS,
    "gitbash": ShellKind.GIT_BASH,
    "wsl": ShellKind.WSL,
    "bash": ShellKind.UNIX,
}


def shell_kind_for(shell_type: str) -> ShellKind:
    """Map a shell type name to its dialect family.

    Raises:
        ConfigurationError: If the type is unknown
    """
    try:
        return SHELL_TYPE_KINDS[shell_type]
    except KeyError as e:
        raise ConfigurationError(
            f"Unknown shell type '{shell_type}' (expected one of "
            f"{', '.join(sorted(SHELL_TYPE_KINDS))})",
            key="type",
        ) from e


@dataclass(frozen=True)
class SecurityLimits:
    """Numeric and boolean security settings."""

    max_command_length: int = 2000
    command_timeout: int = 30
    enable_injection_protection: bool = True
    restrict_working_directory: bool = True

    def __post_init__(self) -> None:
        """Validate configuration values."""
        if self.max_command_length < 1:
            raise ConfigurationError(
                f"max_command_length must be >= 1, got {self.max_command_length}",
                key="max_command_length",
            )
        if not 1 <= self.command_timeout <= MAX_TIMEOUT_SECONDS:
            raise ConfigurationError(
                f"command_timeout must be between 1 and {MAX_TIMEOUT_SECONDS}, "
                f"got {self.command_timeout}",
                key="command_timeout",
            )


@dataclass(frozen=True)
class Restrictions:
    """Blocklists applied to every step of a command chain."""

    blocked_commands: tuple[str, ...] = DEFAULT_BLOCKED_COMMANDS
    blocked_arguments: tuple[str, ...] = DEFAULT_BLOCKED_ARGUMENTS
    blocked_operators: tuple[str, ...] = DEFAULT_BLOCKED_OPERATORS

    def __post_init__(self) -> None:
        """Coerce lists into tuples so the snapshot stays immutable."""
        for f in fields(self):
            object.__setattr__(self, f.name, tuple(str(v) for v in getattr(self, f.name)))


@dataclass(frozen=True)
class PathSettings:
    """Working-directory allow-list."""

    allowed_paths: tuple[str, ...] = ()
    initial_dir: str | None = None

    def __post_init__(self) -> None:
        """Coerce and de-duplicate allowed paths, preserving order."""
        seen: list[str] = []
        for path in self.allowed_paths:
            text = str(path).strip()
            if text and text not in seen:
                seen.append(text)
        object.__setattr__(self, "allowed_paths", tuple(seen))


@dataclass(frozen=True)
class WslSettings:
    """Mount-point settings for WSL-style shells."""

    mount_point: str = DEFAULT_MOUNT_POINT
    inherit_global_paths: bool = True


@dataclass(frozen=True)
class ExecutableSpec:
    """Program and leading arguments used to launch a shell."""

    command: str
    args: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        """Validate configuration values."""
        if not self.command:
            raise ConfigurationError("executable command must not be empty", key="executable")
        object.__setattr__(self, "args", tuple(str(a) for a in self.args))


@dataclass
class LoggingConfig:
    """Output truncation and log storage settings."""

    max_output_lines: int = 20
    enable_truncation: bool = True
    truncation_message: str = DEFAULT_TRUNCATION_MESSAGE
    max_stored_logs: int = 50
    max_log_size: int = 1024 * 1024  # 1MB
    max_total_storage_size: int = 50 * 1024 * 1024  # 50MB
    enable_log_resources: bool = True
    log_retention_minutes: int = 60
    cleanup_interval_minutes: int = 5
    log_directory: str | None = None
    log_retention_days: int | None = None
    max_total_log_size: int | None = None
    max_log_files: int | None = None
    max_return_lines: int = 500
    max_return_bytes: int | None = None
    expose_full_path: bool = False

    def __post_init__(self) -> None:
        """Validate configuration values."""
        positive = (
            "max_output_lines",
            "max_stored_logs",
            "max_log_size",
            "max_total_storage_size",
            "log_retention_minutes",
            "cleanup_interval_minutes",
            "max_return_lines",
        )
        for name in positive:
            value = getattr(self, name)
            if not isinstance(value, int) or isinstance(value, bool) or value < 1:
                raise ConfigurationError(f"{name} must be a positive integer, got {value}", key=name)

        optional_positive = (
            "log_retention_days",
            "max_total_log_size",
            "max_log_files",
            "max_return_bytes",
        )
        for name in optional_positive:
            value = getattr(self, name)
            if value is not None and (not isinstance(value, int) or value < 1):
                raise ConfigurationError(f"{name} must be a positive integer, got {value}", key=name)

        if self.max_output_lines > MAX_OUTPUT_LINES_LIMIT:
            raise ConfigurationError(
                f"max_output_lines must be <= {MAX_OUTPUT_LINES_LIMIT}, got {self.max_output_lines}",
                key="max_output_lines",
            )

        if self.max_log_size < MIN_LOG_SIZE:
            raise ConfigurationError(
                f"max_log_size must be >= {MIN_LOG_SIZE} bytes, got {self.max_log_size}",
                key="max_log_size",
            )

    @property
    def retention_seconds(self) -> float:
        """Maximum entry age; days take precedence over minutes."""
        if self.log_retention_days is not None:
            return self.log_retention_days * 86400.0
        return self.log_retention_minutes * 60.0

    @property
    def disk_max_files(self) -> int:
        """File-count cap of the disk tier."""
        return self.max_log_files if self.max_log_files is not None else self.max_stored_logs

    @property
    def disk_max_total_size(self) -> int:
        """Total byte cap of the disk tier."""
        if self.max_total_log_size is not None:
            return self.max_total_log_size
        return self.max_total_storage_size

    @property
    def return_bytes_cap(self) -> int:
        """Byte cap of a single retrieval response."""
        return self.max_return_bytes if self.max_return_bytes is not None else self.max_log_size

    def to_dict(self) -> dict[str, Any]:
        """Convert config to dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LoggingConfig":
        """Create config from dictionary, ignoring unknown keys."""
        valid_keys = {f.name for f in fields(cls)}
        filtered = {k: v for k, v in data.items() if k in valid_keys}
        return cls(**filtered)


@dataclass
class ShellDefinition:
    """A configured shell before global settings are merged in.

    ``overrides`` holds partial ``security``, ``restrictions`` and ``paths``
    sections that replace global values key by key.
    """

    type: str
    executable: ExecutableSpec
    enabled: bool = True
    overrides: dict[str, dict[str, Any]] = field(default_factory=dict)
    wsl: WslSettings | None = None
    max_output_lines: int | None = None

    def __post_init__(self) -> None:
        """Validate configuration values."""
        shell_kind_for(self.type)
        unknown = set(self.overrides) - {"security", "restrictions", "paths"}
        if unknown:
            raise ConfigurationError(
                f"Unknown override sections: {', '.join(sorted(unknown))}", key="overrides"
            )
        if self.max_output_lines is not None and not 1 <= self.max_output_lines <= MAX_OUTPUT_LINES_LIMIT:
            raise ConfigurationError(
                f"max_output_lines must be between 1 and {MAX_OUTPUT_LINES_LIMIT}, "
                f"got {self.max_output_lines}",
                key="max_output_lines",
            )

    @property
    def kind(self) -> ShellKind:
        return shell_kind_for(self.type)

    def to_dict(self) -> dict[str, Any]:
        """Convert definition to a JSON-ready dictionary."""
        data: dict[str, Any] = {
            "type": self.type,
            "enabled": self.enabled,
            "executable": {"command": self.executable.command, "args": list(self.executable.args)},
        }
        if self.overrides:
            data["overrides"] = self.overrides
        if self.wsl is not None:
            data["wsl"] = asdict(self.wsl)
        if self.max_output_lines is not None:
            data["max_output_lines"] = self.max_output_lines
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any], base: "ShellDefinition | None" = None) -> "ShellDefinition":
        """Create a definition from a dictionary, layered over ``base`` when given.

        Overrides supplied in ``data`` replace the base overrides entirely so a
        user-defined shell does not silently inherit default restrictions.
        """
        shell_type = data.get("type", base.type if base else None)
        if not shell_type:
            raise ConfigurationError("shell definition requires a 'type'", key="type")

        exe_data = data.get("executable")
        if exe_data is not None:
            if not isinstance(exe_data, dict):
                raise ConfigurationError("executable must be an object", key="executable")
            executable = ExecutableSpec(
                command=exe_data.get("command", base.executable.command if base else ""),
                args=tuple(exe_data.get("args", base.executable.args if base else ())),
            )
        elif base is not None:
            executable = base.executable
        else:
            raise ConfigurationError(
                f"shell of type '{shell_type}' requires an executable", key="executable"
            )

        wsl = base.wsl if base else None
        if "wsl" in data and data["wsl"] is not None:
            wsl = WslSettings(**_known_keys(WslSettings, data["wsl"]))

        return cls(
            type=shell_type,
            executable=executable,
            enabled=bool(data.get("enabled", base.enabled if base else True)),
            overrides=dict(data.get("overrides", {} if base is None else base.overrides)),
            wsl=wsl,
            max_output_lines=data.get("max_output_lines", base.max_output_lines if base else None),
        )


@dataclass(frozen=True)
class ResolvedShellConfig:
    """Immutable per-shell snapshot with global settings merged in."""

    name: str
    type: str
    kind: ShellKind
    enabled: bool
    executable: ExecutableSpec
    security: SecurityLimits
    restrictions: Restrictions
    paths: PathSettings
    wsl: WslSettings | None = None
    max_output_lines: int | None = None


def _is_windows_host() -> bool:
    return sys.platform == "win32"


def default_shells() -> dict[str, ShellDefinition]:
    """Return the built-in shell definitions.

    Windows shells are enabled on Windows hosts, plain bash everywhere else.
    """
    windows = _is_windows_host()
    return {
        "powershell": ShellDefinition(
            type="powershell",
            enabled=windows,
            executable=ExecutableSpec(
                command="powershell.exe", args=("-NoProfile", "-NonInteractive", "-Command")
            ),
        ),
        "cmd": ShellDefinition(
            type="cmd",
            enabled=windows,
            executable=ExecutableSpec(command="cmd.exe", args=("/c",)),
            overrides={
                "restrictions": {"blocked_commands": [*DEFAULT_BLOCKED_COMMANDS, "del", "rd", "rmdir"]}
            },
        ),
        "gitbash": ShellDefinition(
            type="gitbash",
            enabled=windows,
            executable=ExecutableSpec(command=r"C:\Program Files\Git\bin\bash.exe", args=("-c",)),
            overrides={"restrictions": {"blocked_commands": [*DEFAULT_BLOCKED_COMMANDS, "rm"]}},
        ),
        "wsl": ShellDefinition(
            type="wsl",
            enabled=windows,
            executable=ExecutableSpec(command="wsl.exe", args=("-e",)),
            wsl=WslSettings(),
        ),
        "bash": ShellDefinition(
            type="bash",
            enabled=not windows,
            executable=ExecutableSpec(command="bash", args=("-c",)),
        ),
    }


@dataclass
class GatewayConfig:
    """Top-level configuration: global policy, logging and shells.

    ``logging`` may be None, in which case the gateway keeps no log store and
    retrieval operations fail with LOGS_DISABLED.
    """

    security: SecurityLimits = field(default_factory=SecurityLimits)
    restrictions: Restrictions = field(default_factory=Restrictions)
    paths: PathSettings = field(default_factory=PathSettings)
    logging: LoggingConfig | None = field(default_factory=LoggingConfig)
    shells: dict[str, ShellDefinition] = field(default_factory=default_shells)

    def to_dict(self) -> dict[str, Any]:
        """Convert config to a JSON-ready dictionary."""
        return {
            "global": {
                "security": asdict(self.security),
                "restrictions": {k: list(v) for k, v in asdict(self.restrictions).items()},
                "paths": {
                    "allowed_paths": list(self.paths.allowed_paths),
                    "initial_dir": self.paths.initial_dir,
                },
                "logging": self.logging.to_dict() if self.logging else None,
            },
            "shells": {name: shell.to_dict() for name, shell in self.shells.items()},
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any], base: "GatewayConfig | None" = None) -> "GatewayConfig":
        """Create config from dictionary, layered over ``base`` (defaults if None).

        Keys may be camelCase or snake_case. Scalar settings merge key by key;
        a list in ``data`` replaces the base list.
        """
        base = base or cls()
        data = _snake_keys(data)
        section = data.get("global", data)
        if not isinstance(section, dict):
            raise ConfigurationError("'global' must be an object", key="global")

        try:
            security = replace(base.security, **_known_keys(SecurityLimits, section.get("security")))
            restrictions = replace(
                base.restrictions, **_known_keys(Restrictions, section.get("restrictions"))
            )
            paths = replace(base.paths, **_known_keys(PathSettings, section.get("paths")))
        except TypeError as e:
            raise ConfigurationError(f"Invalid global settings: {e}") from e

        logging_config = base.logging
        if "logging" in section:
            raw_logging = section["logging"]
            if raw_logging is None:
                logging_config = None
            else:
                merged = (base.logging or LoggingConfig()).to_dict()
                merged.update(_known_keys(LoggingConfig, raw_logging))
                logging_config = LoggingConfig.from_dict(merged)

        shells = dict(base.shells)
        raw_shells = data.get("shells") or {}
        if not isinstance(raw_shells, dict):
            raise ConfigurationError("'shells' must be an object", key="shells")
        for name, raw in raw_shells.items():
            if not isinstance(raw, dict):
                raise ConfigurationError(f"shell '{name}' must be an object", key=f"shells.{name}")
            shells[name] = ShellDefinition.from_dict(raw, base=base.shells.get(name))

        return cls(
            security=security,
            restrictions=restrictions,
            paths=paths,
            logging=logging_config,
            shells=shells,
        )


def _known_keys(cls: type, data: Any) -> dict[str, Any]:
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"{cls.__name__} section must be an object")
    valid_keys = {f.name for f in fields(cls)}
    result: dict[str, Any] = {}
    for key, value in data.items():
        if key not in valid_keys:
            continue
        result[key] = tuple(value) if isinstance(value, list) else value
    return result


_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")

_KEY_ALIASES = {"wsl_config": "wsl"}


def _snake_key(key: str) -> str:
    snake = _CAMEL_BOUNDARY.sub("_", key).lower()
    return _KEY_ALIASES.get(snake, snake)


def _snake_keys(value: Any, preserve: bool = False) -> Any:
    """Recursively convert camelCase keys to snake_case.

    Shell names (the keys directly under ``shells``) keep their spelling.
    """
    if isinstance(value, dict):
        converted: dict[str, Any] = {}
        for key, item in value.items():
            new_key = key if preserve else _snake_key(key)
            converted[new_key] = _snake_keys(item, preserve=not preserve and new_key == "shells")
        return converted
    if isinstance(value, list):
        return [_snake_keys(item) for item in value]
    return value


def resolve_shell_config(config: GatewayConfig, name: str) -> ResolvedShellConfig | None:
    """Merge global settings into the named shell.

    Returns None when the shell is unknown or disabled.

    Raises:
        ConfigurationError: If the merged settings are invalid
    """
    definition = config.shells.get(name)
    if definition is None or not definition.enabled:
        return None

    overrides = definition.overrides
    try:
        security = replace(config.security, **_known_keys(SecurityLimits, overrides.get("security")))
        restrictions = replace(
            config.restrictions, **_known_keys(Restrictions, overrides.get("restrictions"))
        )
        path_overrides = _known_keys(PathSettings, overrides.get("paths"))
        paths = replace(config.paths, **path_overrides)
    except TypeError as e:
        raise ConfigurationError(f"Invalid overrides for shell '{name}': {e}", key=name) from e

    if (
        definition.wsl is not None
        and definition.wsl.inherit_global_paths
        and "allowed_paths" not in path_overrides
    ):
        paths = replace(
            paths,
            allowed_paths=tuple(
                windows_to_wsl(p, definition.wsl.mount_point) if is_windows_path(p) else p
                for p in config.paths.allowed_paths
            ),
        )

    return ResolvedShellConfig(
        name=name,
        type=definition.type,
        kind=definition.kind,
        enabled=True,
        executable=definition.executable,
        security=security,
        restrictions=restrictions,
        paths=paths,
        wsl=definition.wsl,
        max_output_lines=definition.max_output_lines,
    )


def load_config_file(config_path: Path) -> GatewayConfig:
    """Load configuration from a JSON file layered over the defaults.

    Raises:
        ConfigurationError: If the file is missing or invalid
    """
    if not config_path.exists():
        raise ConfigurationError(f"Config file not found: {config_path}", key="config")

    try:
        with config_path.open(encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Invalid JSON in config file {config_path}: {e}") from e
    except OSError as e:
        raise ConfigurationError(f"Failed to load config file {config_path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {config_path} must contain a JSON object")

    return GatewayConfig.from_dict(data)


def find_config_file(project_root: Path | None = None) -> Path | None:
    """Locate a config file: ./cmdgate.json, then ~/.cmdgate/config.json."""
    candidates = [
        (project_root or Path.cwd()) / "cmdgate.json",
        Path.home() / ".cmdgate" / "config.json",
    ]
    for candidate in candidates:
        if candidate.is_file():
            return candidate
    return None


def load_env_overrides() -> dict[str, Any]:
    """Load configuration overrides from environment variables.

    Supported environment variables:
    - CMDGATE_ALLOWED_PATHS: ';'-separated working-directory allow-list
    - CMDGATE_COMMAND_TIMEOUT: Command timeout in seconds
    - CMDGATE_MAX_OUTPUT_LINES: Default lines returned per execution
    - CMDGATE_LOG_DIRECTORY: Directory for the disk tier of the log store

    Returns:
        Dictionary of configuration overrides
    """
    overrides: dict[str, Any] = {}

    if allowed := os.getenv("CMDGATE_ALLOWED_PATHS"):
        overrides["allowed_paths"] = tuple(p.strip() for p in allowed.split(";") if p.strip())

    if timeout_str := os.getenv("CMDGATE_COMMAND_TIMEOUT"):
        try:
            overrides["command_timeout"] = int(timeout_str)
        except ValueError as e:
            raise ConfigurationError(
                f"Invalid CMDGATE_COMMAND_TIMEOUT: {timeout_str}", key="command_timeout"
            ) from e

    if lines_str := os.getenv("CMDGATE_MAX_OUTPUT_LINES"):
        try:
            overrides["max_output_lines"] = int(lines_str)
        except ValueError as e:
            raise ConfigurationError(
                f"Invalid CMDGATE_MAX_OUTPUT_LINES: {lines_str}", key="max_output_lines"
            ) from e

    if log_dir := os.getenv("CMDGATE_LOG_DIRECTORY"):
        overrides["log_directory"] = log_dir

    return overrides


def apply_env_overrides(config: GatewayConfig, env_overrides: dict[str, Any]) -> GatewayConfig:
    """Return a copy of ``config`` with environment overrides applied."""
    if not env_overrides:
        return config

    security = config.security
    if "command_timeout" in env_overrides:
        security = replace(security, command_timeout=env_overrides["command_timeout"])

    paths = config.paths
    if "allowed_paths" in env_overrides:
        paths = replace(paths, allowed_paths=env_overrides["allowed_paths"])

    logging_config = config.logging
    if logging_config is not None:
        updates = {
            k: env_overrides[k] for k in ("max_output_lines", "log_directory") if k in env_overrides
        }
        if updates:
            logging_config = LoggingConfig.from_dict({**logging_config.to_dict(), **updates})

    return replace(config, security=security, paths=paths, logging=logging_config)


def finalize_paths(config: GatewayConfig) -> GatewayConfig:
    """Add an existing ``initial_dir`` to the allow-list when restriction is on.

    A configured initial directory that does not exist is dropped.
    """
    initial = config.paths.initial_dir
    if not initial:
        return config

    if not Path(initial).is_dir():
        return replace(config, paths=replace(config.paths, initial_dir=None))

    if config.security.restrict_working_directory and initial not in config.paths.allowed_paths:
        return replace(
            config,
            paths=replace(config.paths, allowed_paths=(*config.paths.allowed_paths, initial)),
        )
    return config


def load_config(config_path: Path | None = None, project_root: Path | None = None) -> GatewayConfig:
    """Load and merge all configuration sources.

    Precedence (highest to lowest):
    1. Environment variables
    2. Config file (``config_path`` or the first one found)
    3. Defaults

    Args:
        config_path: Explicit config file; must exist when given
        project_root: Directory searched for cmdgate.json (default: cwd)

    Returns:
        Merged configuration

    Raises:
        ConfigurationError: If any config source is invalid
    """
    path = config_path or find_config_file(project_root)
    config = load_config_file(path) if path is not None else GatewayConfig()
    config = apply_env_overrides(config, load_env_overrides())
    return finalize_paths(config)
