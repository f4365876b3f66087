"""Shell dialects.

Every place where behavior depends on the kind of shell (how paths are
spelled and compared, how argv is built, where the process is spawned) goes
through one of the dialect classes below. A dialect is selected once per
request via ``dialect_for`` and carried in the ValidationContext.
"""

import ntpath
import os
import posixpath
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import ClassVar

from cmdgate.core.config import ResolvedShellConfig, ShellKind
from cmdgate.security.paths import (
    DEFAULT_MOUNT_POINT,
    is_windows_path,
    is_within,
    normalize_posix_path,
    normalize_windows_path,
    windows_to_wsl,
    wsl_to_windows,
)

_WINDOWS_FORMAT = re.compile(r"^([a-zA-Z]:\\|\\\\[^\\]+\\[^\\]+)")

# Runs "$@" as steps separated by literal "&&" tokens and stops at the first
# failing step with its exit status.
CHAIN_RUNNER_SCRIPT = (
    "step=(); "
    'for arg in "$@" "&&"; do '
    'if [ "$arg" = "&&" ]; then '
    '[ ${#step[@]} -eq 0 ] || "${step[@]}" || exit $?; '
    "step=(); "
    'else step+=("$arg"); fi; '
    "done"
)


@dataclass(frozen=True)
class SpawnLocation:
    """Host directory and extra environment used to start a shell process."""

    cwd: str
    env: dict[str, str] = field(default_factory=dict)


class ShellDialect(ABC):
    """Path and invocation rules for one family of shells."""

    kind: ClassVar[ShellKind]
    path_separator: ClassVar[str]
    case_insensitive: ClassVar[bool]

    @abstractmethod
    def normalize_path(self, path: str, config: ResolvedShellConfig) -> str:
        """Return ``path`` in this dialect's canonical spelling."""
        ...

    @abstractmethod
    def is_absolute(self, path: str) -> bool: ...

    @abstractmethod
    def _join(self, base: str, target: str) -> str: ...

    @abstractmethod
    def is_valid_format(self, path: str) -> bool:
        """Return True when a normalized path is spelled correctly for the shell."""
        ...

    @abstractmethod
    def build_args(self, config: ResolvedShellConfig, command: str, tokens: list[str]) -> list[str]:
        """Build the full argv (program first) for running ``command``.

        Args:
            config: Resolved shell configuration
            command: Raw command string
            tokens: Validated tokenization of ``command``
        """
        ...

    def resolve(self, cursor: str, target: str, config: ResolvedShellConfig) -> str:
        """Resolve a ``cd`` target against the current directory cursor."""
        normalized = self.normalize_path(target, config)
        if self.is_absolute(normalized):
            return normalized
        return self.normalize_path(self._join(cursor, normalized), config)

    def allowed_roots(self, config: ResolvedShellConfig) -> list[str]:
        """Allow-list entries converted into this dialect's spelling."""
        return [self.normalize_path(p, config) for p in config.paths.allowed_paths]

    def path_allowed(self, path: str, config: ResolvedShellConfig) -> bool:
        """Return True when a normalized ``path`` lies under an allow-list entry."""
        return any(
            is_within(
                path,
                root,
                separator=self.path_separator,
                case_insensitive=self.case_insensitive,
            )
            for root in self.allowed_roots(config)
        )

    def spawn_location(self, path: str, config: ResolvedShellConfig) -> SpawnLocation:
        """Translate a validated working directory into a host spawn location."""
        return SpawnLocation(cwd=path)


class NativeWindowsDialect(ShellDialect):
    """cmd.exe and PowerShell: drive-letter paths, case-insensitive."""

    kind = ShellKind.NATIVE_WINDOWS
    path_separator = "\\"
    case_insensitive = True

    def normalize_path(self, path: str, config: ResolvedShellConfig) -> str:
        return normalize_windows_path(path)

    def is_absolute(self, path: str) -> bool:
        return is_windows_path(path)

    def _join(self, base: str, target: str) -> str:
        return ntpath.join(base, target)

    def is_valid_format(self, path: str) -> bool:
        return bool(_WINDOWS_FORMAT.match(path))

    def build_args(self, config: ResolvedShellConfig, command: str, tokens: list[str]) -> list[str]:
        return [config.executable.command, *config.executable.args, command]


class GitBashDialect(NativeWindowsDialect):
    """Git for Windows bash: accepts ``C:\\x`` and ``/c/x`` spellings alike.

    Paths are compared in native Windows form so an allow-list entry matches
    regardless of which spelling either side uses.
    """

    kind = ShellKind.GIT_BASH

    def spawn_location(self, path: str, config: ResolvedShellConfig) -> SpawnLocation:
        return SpawnLocation(cwd=normalize_windows_path(path))


class _PosixDialect(ShellDialect):
    path_separator = "/"
    case_insensitive = False

    def normalize_path(self, path: str, config: ResolvedShellConfig) -> str:
        return normalize_posix_path(path)

    def is_absolute(self, path: str) -> bool:
        return path.startswith("/")

    def _join(self, base: str, target: str) -> str:
        return posixpath.join(base, target)

    def is_valid_format(self, path: str) -> bool:
        return path.startswith("/")


class WslDialect(_PosixDialect):
    """WSL launcher: Linux paths, Windows drives mounted under the mount point.

    The launcher runs on the Windows host, so validated tokens are passed as
    discrete argv entries and the spawn directory is translated back to a
    Windows path.
    """

    kind = ShellKind.WSL

    @staticmethod
    def _mount_point(config: ResolvedShellConfig) -> str:
        return config.wsl.mount_point if config.wsl else DEFAULT_MOUNT_POINT

    def normalize_path(self, path: str, config: ResolvedShellConfig) -> str:
        if is_windows_path(path):
            return windows_to_wsl(path, self._mount_point(config))
        return normalize_posix_path(path)

    def build_args(self, config: ResolvedShellConfig, command: str, tokens: list[str]) -> list[str]:
        return [config.executable.command, *config.executable.args, *tokens]

    def spawn_location(self, path: str, config: ResolvedShellConfig) -> SpawnLocation:
        windows_path = wsl_to_windows(path, self._mount_point(config))
        if windows_path is not None:
            cwd = windows_path
        elif path.startswith("/"):
            # Linux-only directory; the inner shell reads it from the environment
            cwd = os.getcwd()
        else:
            cwd = path
        return SpawnLocation(cwd=cwd, env={"WSL_ORIGINAL_PATH": path})


class UnixDialect(_PosixDialect):
    """A POSIX shell running directly on the host.

    The validated tokens are appended as positional parameters after a fixed
    runner script, so the shell never re-parses the command text: quoting,
    globbing and parameter expansion do not apply, and only the literal
    ``&&`` tokens separate steps.
    """

    kind = ShellKind.UNIX

    def build_args(self, config: ResolvedShellConfig, command: str, tokens: list[str]) -> list[str]:
        program = config.executable.command
        return [program, *config.executable.args, CHAIN_RUNNER_SCRIPT, program, *tokens]


_DIALECTS: dict[ShellKind, ShellDialect] = {
    ShellKind.NATIVE_WINDOWS: NativeWindowsDialect(),
    ShellKind.GIT_BASH: GitBashDialect(),
    ShellKind.WSL: WslDialect(),
    ShellKind.UNIX: UnixDialect(),
}


def dialect_for(kind: ShellKind) -> ShellDialect:
    """Return the dialect instance for a shell kind."""
    return _DIALECTS[kind]


@dataclass(frozen=True)
class ValidationContext:
    """Per-request view of a shell used by validation and execution."""

    shell_name: str
    shell_config: ResolvedShellConfig
    dialect: ShellDialect

    @property
    def is_windows_shell(self) -> bool:
        return self.shell_config.kind == ShellKind.NATIVE_WINDOWS

    @property
    def is_unix_shell(self) -> bool:
        return self.shell_config.kind in (ShellKind.GIT_BASH, ShellKind.WSL, ShellKind.UNIX)

    @property
    def is_wsl_shell(self) -> bool:
        return self.shell_config.kind == ShellKind.WSL


def create_validation_context(shell_name: str, shell_config: ResolvedShellConfig) -> ValidationContext:
    """Build a fresh validation context for one request."""
    return ValidationContext(
        shell_name=shell_name,
        shell_config=shell_config,
        dialect=dialect_for(shell_config.kind),
    )
