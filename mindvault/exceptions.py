"""Custom exception classes for mindvault."""

from pathlib import Path
from typing import Optional


class MindError(RuntimeError):
    """Base class for memory store errors."""


class LockTimeoutError(MindError):
    """Raised when the memory lock could not be acquired within the retry budget.

    Callers running inside a host tool should skip the operation rather than
    block the host.

    Attributes:
        lock_path: Path of the lock sidecar file
        attempts: Number of acquisition attempts made
    """

    def __init__(self, lock_path: Path, attempts: int):
        super().__init__(f"Failed to acquire lock on {lock_path} after {attempts} attempts")
        self.lock_path = lock_path
        self.attempts = attempts


class EngineError(MindError):
    """Raised by a storage engine. The message carries the native error text."""


class CorruptStoreError(MindError):
    """The memory file could not be validated and must be recreated.

    Handled inside ``Mind.open``; never surfaced to callers.
    """

    def __init__(self, memory_path: Path, reason: str, cause: Optional[BaseException] = None):
        super().__init__(f"Memory file {memory_path} is corrupted: {reason}")
        self.memory_path = memory_path
        self.reason = reason
        self.cause = cause


class OversizedStoreError(CorruptStoreError):
    """The memory file exceeds the size ceiling and is treated as corrupted."""

    def __init__(self, memory_path: Path, size_bytes: int, limit_bytes: int):
        size_mb = size_bytes / (1024 * 1024)
        super().__init__(memory_path, f"file too large ({size_mb:.1f}MB)")
        self.size_bytes = size_bytes
        self.limit_bytes = limit_bytes
