"""Command executor implementations.

- SubprocessExecutor: direct asyncio subprocess with timeout supervision
"""

from cmdgate.core.executors.subprocess_executor import SubprocessExecutor

__all__ = ["SubprocessExecutor"]
