"""Bounded store of command execution logs.

Two tiers:

- Memory: an insertion-ordered table with a running byte total. Count, size
  and age limits are enforced synchronously inside ``store_log`` so they hold
  as soon as it returns. Eviction is strict FIFO.
- Disk (optional, when ``log_directory`` is configured): one ``<id>.log`` file
  per entry, written in the background. It has its own count, size and age
  limits enforced by a sweep after each write and by the periodic cleanup
  task. Disk faults are logged, never raised.

Entries are immutable. The only change after creation is the disk tier
swapping in a copy with ``file_path`` filled, once the file exists.
"""

import asyncio
import contextlib
import os
import secrets
import threading
import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import UTC, datetime, timedelta
from pathlib import Path

from cmdgate.core.command_executor import combine_streams
from cmdgate.core.config import LoggingConfig
from cmdgate.core.exceptions import ConfigurationError
from cmdgate.core.logger import CmdGateLogger
from cmdgate.logs.truncation import count_lines, normalize_newlines, split_lines
from cmdgate.security.paths import has_traversal_segment

ENTRY_METADATA_OVERHEAD = 200
ENTRY_TRUNCATION_MARKER = "[Log truncated to fit size limit]\n"
LOG_FILE_SUFFIX = ".log"


@dataclass(frozen=True)
class CommandLogEntry:
    """One stored execution (or rejected request)."""

    id: str
    timestamp: datetime
    command: str
    shell: str
    working_directory: str
    exit_code: int
    stdout: str
    stderr: str
    combined_output: str
    stdout_lines: int
    stderr_lines: int
    total_lines: int
    size: int
    file_path: str | None = None


@dataclass
class LogFilter:
    """Criteria for ``LogStorage.list_logs``."""

    shell: str | None = None
    exit_code: int | None = None
    since: datetime | None = None
    until: datetime | None = None

    def matches(self, entry: CommandLogEntry) -> bool:
        if self.shell is not None and entry.shell != self.shell:
            return False
        if self.exit_code is not None and entry.exit_code != self.exit_code:
            return False
        if self.since is not None and entry.timestamp < self.since:
            return False
        if self.until is not None and entry.timestamp > self.until:
            return False
        return True


@dataclass
class StorageStats:
    """Snapshot of the memory tier."""

    total_logs: int
    total_size: int
    max_logs: int
    max_size: int
    log_directory: str | None = None


def entry_size(stdout: str, stderr: str, combined_output: str) -> int:
    """Byte size charged to an entry: UTF-8 size of all outputs plus overhead."""
    return (
        len(stdout.encode("utf-8"))
        + len(stderr.encode("utf-8"))
        + len(combined_output.encode("utf-8"))
        + ENTRY_METADATA_OVERHEAD
    )


def truncate_tail(text: str, max_bytes: int, marker: str = ENTRY_TRUNCATION_MARKER) -> str:
    """Keep the tail of ``text`` so the result, marker included, fits ``max_bytes``.

    Whole lines are kept from the end. When not even the last line fits, the
    last bytes of that line are kept instead.
    """
    if len(text.encode("utf-8")) <= max_bytes:
        return text

    budget = max_bytes - len(marker.encode("utf-8"))
    if budget <= 0:
        return ""

    kept: list[str] = []
    used = 0
    for line in reversed(text.split("\n")):
        line_size = len(line.encode("utf-8")) + (1 if kept else 0)
        if used + line_size > budget:
            break
        kept.append(line)
        used += line_size

    if not kept:
        tail_bytes = text.encode("utf-8")[-budget:]
        return marker + tail_bytes.decode("utf-8", errors="ignore")

    return marker + "\n".join(reversed(kept))


def sanitize_log_directory(log_dir: str) -> Path:
    """Expand ``~`` and environment variables and return an absolute path.

    Raises:
        ConfigurationError: If the path contains a ``..`` segment
    """
    expanded = os.path.expandvars(os.path.expanduser(log_dir.strip()))
    if has_traversal_segment(expanded):
        raise ConfigurationError(
            f"Log directory contains path traversal: {log_dir}", key="log_directory"
        )
    return Path(expanded).resolve()


def render_log_file(entry: CommandLogEntry, max_output_bytes: int) -> str:
    """Render the disk-tier file for an entry: header block then output.

    Output larger than ``max_output_bytes`` loses leading lines.
    """
    content = entry.combined_output
    if len(content.encode("utf-8")) > max_output_bytes:
        lines = content.split("\n")
        notice = f"[Log truncated to {max_output_bytes} bytes]"
        while len(lines) > 1 and len("\n".join(lines).encode("utf-8")) > max_output_bytes:
            lines.pop(0)
        content = notice + "\n" + "\n".join(lines)

    header = [
        "# Command Execution Log",
        "# ====================",
        f"# Execution ID: {entry.id}",
        f"# Timestamp: {entry.timestamp.isoformat()}",
        f"# Shell: {entry.shell}",
        f"# Working Directory: {entry.working_directory}",
        f"# Command: {entry.command}",
        f"# Exit Code: {entry.exit_code}",
        f"# Total Lines: {entry.total_lines}",
        "# --- Output ---",
    ]
    return "\n".join(header) + "\n" + content + "\n"


class LogStorage:
    """In-memory log table with an optional best-effort disk tier.

    Mutations are serialized with a re-entrant lock so callers on other
    threads (disk writes run in worker threads) never see a half-applied
    eviction.
    """

    def __init__(
        self,
        config: LoggingConfig,
        logger: CmdGateLogger | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize the store.

        Args:
            config: Logging configuration with the limits of both tiers
            logger: Logger for best-effort faults
            clock: Source of the current UTC time (tests substitute one)
        """
        self.config = config
        self.logger = logger
        self._clock = clock or (lambda: datetime.now(UTC))

        self._entries: OrderedDict[str, CommandLogEntry] = OrderedDict()
        self._total_size = 0
        self._lock = threading.RLock()
        self._sweep_lock = threading.Lock()

        self._pending_writes: set[asyncio.Task[None]] = set()
        self._cleanup_task: asyncio.Task[None] | None = None

        self.log_directory: Path | None = (
            sanitize_log_directory(config.log_directory) if config.log_directory else None
        )

    # -- memory tier -----------------------------------------------------

    def store_log(
        self,
        command: str,
        shell: str,
        working_directory: str,
        stdout: str,
        stderr: str,
        exit_code: int,
    ) -> CommandLogEntry:
        """Store one execution and enforce the memory-tier limits.

        Returns:
            The stored entry. Its ``file_path`` is unset; the disk tier fills
            it in later on a copy retrievable through ``get_log``.
        """
        stdout = normalize_newlines(stdout or "")
        stderr = normalize_newlines(stderr or "")
        combined = normalize_newlines(combine_streams(stdout, stderr, exit_code))
        size = entry_size(stdout, stderr, combined)

        max_entry = self.config.max_log_size
        if size > max_entry:
            per_field = max(0, (max_entry - ENTRY_METADATA_OVERHEAD) // 3)
            stdout = truncate_tail(stdout, per_field)
            stderr = truncate_tail(stderr, per_field)
            combined = truncate_tail(combine_streams(stdout, stderr, exit_code), per_field)
            size = entry_size(stdout, stderr, combined)

        with self._lock:
            entry = CommandLogEntry(
                id=self._generate_id(),
                timestamp=self._clock(),
                command=command,
                shell=shell,
                working_directory=working_directory,
                exit_code=exit_code,
                stdout=stdout,
                stderr=stderr,
                combined_output=combined,
                stdout_lines=count_lines(stdout),
                stderr_lines=count_lines(stderr),
                total_lines=len(split_lines(combined)),
                size=size,
            )
            self._entries[entry.id] = entry
            self._total_size += entry.size
            self.cleanup()

        if self.log_directory is not None:
            self._schedule_write(entry)

        return entry

    def get_log(self, execution_id: str) -> CommandLogEntry | None:
        with self._lock:
            return self._entries.get(execution_id)

    def has_log(self, execution_id: str) -> bool:
        with self._lock:
            return execution_id in self._entries

    def list_logs(self, log_filter: LogFilter | None = None) -> list[CommandLogEntry]:
        """Return entries oldest first, optionally filtered."""
        with self._lock:
            entries = list(self._entries.values())
        if log_filter is not None:
            entries = [e for e in entries if log_filter.matches(e)]
        return sorted(entries, key=lambda e: e.timestamp)

    def delete_log(self, execution_id: str) -> bool:
        """Remove an entry and, best effort, its disk file.

        Returns:
            True if the entry existed
        """
        with self._lock:
            entry = self._remove(execution_id)
        if entry is None:
            return False

        if entry.file_path:
            try:
                Path(entry.file_path).unlink(missing_ok=True)
            except OSError as e:
                self._warn("log_file_delete_failed", path=entry.file_path, error=str(e))
        return True

    def clear(self) -> None:
        """Drop every in-memory entry. Disk files are left to the disk sweep."""
        with self._lock:
            self._entries.clear()
            self._total_size = 0

    def get_stats(self) -> StorageStats:
        with self._lock:
            return StorageStats(
                total_logs=len(self._entries),
                total_size=self._total_size,
                max_logs=self.config.max_stored_logs,
                max_size=self.config.max_total_storage_size,
                log_directory=str(self.log_directory) if self.log_directory else None,
            )

    def cleanup(self) -> None:
        """Enforce retention, then the count limit, then the size limit."""
        with self._lock:
            cutoff = self._clock() - timedelta(seconds=self.config.retention_seconds)
            expired = [eid for eid, e in self._entries.items() if e.timestamp < cutoff]
            for eid in expired:
                self._remove(eid)

            while len(self._entries) > self.config.max_stored_logs:
                self._remove_oldest()

            while self._entries and self._total_size > self.config.max_total_storage_size:
                self._remove_oldest()

    def _remove(self, execution_id: str) -> CommandLogEntry | None:
        entry = self._entries.pop(execution_id, None)
        if entry is not None:
            self._total_size -= entry.size
        return entry

    def _remove_oldest(self) -> None:
        oldest_id = next(iter(self._entries))
        self._remove(oldest_id)

    def _generate_id(self) -> str:
        while True:
            candidate = f"{self._clock():%Y%m%d%H%M%S}-{secrets.token_hex(3)}"
            if candidate not in self._entries:
                return candidate

    # -- disk tier -------------------------------------------------------

    def _schedule_write(self, entry: CommandLogEntry) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self.write_log_file(entry)
            return

        task = loop.create_task(asyncio.to_thread(self.write_log_file, entry))
        self._pending_writes.add(task)
        task.add_done_callback(self._pending_writes.discard)

    def write_log_file(self, entry: CommandLogEntry) -> Path | None:
        """Write an entry's disk file, then sweep the disk tier.

        Returns:
            The file path, or None when the write failed (the failure is logged)
        """
        if self.log_directory is None:
            return None

        path = self.log_directory / f"{entry.id}{LOG_FILE_SUFFIX}"
        try:
            self.log_directory.mkdir(parents=True, exist_ok=True)
            path.write_text(render_log_file(entry, self.config.max_log_size), encoding="utf-8")
        except OSError as e:
            self._warn("log_file_write_failed", execution_id=entry.id, path=str(path), error=str(e))
            return None

        with self._lock:
            current = self._entries.get(entry.id)
            if current is not None and current.file_path is None:
                self._entries[entry.id] = replace(current, file_path=str(path))

        self.sweep_files()
        return path

    def sweep_files(self) -> int:
        """Enforce the disk tier's age, count and size limits.

        Never runs concurrently with itself; an overlapping call returns
        immediately.

        Returns:
            Number of files deleted
        """
        if self.log_directory is None:
            return 0
        if not self._sweep_lock.acquire(blocking=False):
            return 0

        try:
            return self._sweep_files_locked(self.log_directory)
        finally:
            self._sweep_lock.release()

    def _sweep_files_locked(self, log_dir: Path) -> int:
        files: list[tuple[Path, float, int]] = []
        try:
            for path in log_dir.glob(f"*{LOG_FILE_SUFFIX}"):
                stat = path.stat()
                files.append((path, stat.st_mtime, stat.st_size))
        except FileNotFoundError:
            return 0
        except OSError as e:
            self._warn("log_directory_scan_failed", path=str(log_dir), error=str(e))
            return 0

        files.sort(key=lambda f: f[1])
        now = time.time()
        retention = self.config.retention_seconds

        doomed: list[tuple[Path, float, int]] = [f for f in files if now - f[1] > retention]
        survivors = [f for f in files if now - f[1] <= retention]

        max_files = self.config.disk_max_files
        while len(survivors) > max_files:
            doomed.append(survivors.pop(0))

        max_bytes = self.config.disk_max_total_size
        total = sum(f[2] for f in survivors)
        while survivors and total > max_bytes:
            oldest = survivors.pop(0)
            total -= oldest[2]
            doomed.append(oldest)

        deleted = 0
        for path, _mtime, _size in doomed:
            try:
                path.unlink(missing_ok=True)
                deleted += 1
            except OSError as e:
                self._warn("log_file_delete_failed", path=str(path), error=str(e))
        return deleted

    async def flush(self) -> None:
        """Wait for every pending disk write to finish."""
        while self._pending_writes:
            await asyncio.gather(*list(self._pending_writes), return_exceptions=True)

    # -- periodic cleanup ------------------------------------------------

    def start_cleanup(self) -> None:
        """Start the periodic cleanup task on the running event loop.

        Does nothing if it is already running.
        """
        if self._cleanup_task is not None and not self._cleanup_task.done():
            return
        self._cleanup_task = asyncio.get_running_loop().create_task(self._cleanup_loop())

    def stop_cleanup(self) -> None:
        """Cancel the periodic cleanup task."""
        if self._cleanup_task is not None:
            self._cleanup_task.cancel()

    @property
    def cleanup_running(self) -> bool:
        return self._cleanup_task is not None and not self._cleanup_task.done()

    async def _cleanup_loop(self) -> None:
        interval = self.config.cleanup_interval_minutes * 60
        while True:
            await asyncio.sleep(interval)
            await self.run_cleanup_cycle()

    async def run_cleanup_cycle(self) -> None:
        """One periodic pass over both tiers."""
        self.cleanup()
        if self.log_directory is not None:
            await asyncio.to_thread(self.sweep_files)

    async def aclose(self) -> None:
        """Stop the periodic task and wait for pending disk writes."""
        task = self._cleanup_task
        self.stop_cleanup()
        if task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._cleanup_task = None
        await self.flush()

    def _warn(self, msg: str, **kv: object) -> None:
        if self.logger is not None:
            self.logger.warn(msg, **kv)
