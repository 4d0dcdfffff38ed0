"""Cross-process lock around the memory file.

Every read or write of a memory file happens while holding an exclusive
portalocker lock on its ``<memoryPath>.lock`` sidecar. Acquisition is
non-blocking with a bounded number of retries, so a busy store turns into a
``LockTimeoutError`` instead of a hung host tool.

A holder touches the sidecar periodically. If a contender finds the lock held
but the sidecar untouched for longer than the stale threshold, it unlinks the
sidecar and locks a fresh one. Stealing happens under a second lock on a
``.steal`` guard file and only removes the sidecar inode that was seen as
stale, so two contenders can never both steal. After locking, the acquirer
checks that the file it holds is still the one at the path.
"""

import asyncio
import contextlib
import logging
import os
import time
from contextlib import asynccontextmanager
from pathlib import Path
from typing import IO, AsyncIterator, Awaitable, Callable, Optional, TypeVar, Union

import portalocker

from .exceptions import LockTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")

STALE_SECONDS = 30.0
LOCK_RETRIES = 1000
MIN_RETRY_DELAY = 0.005
MAX_RETRY_DELAY = 0.05
RETRY_BACKOFF_FACTOR = 1.2


def lock_path_for(memory_path: Union[str, Path]) -> Path:
    """Sidecar lock path for a memory file."""
    return Path(f"{memory_path}.lock")


def _same_file(handle: IO, path: Path) -> bool:
    try:
        held = os.fstat(handle.fileno())
        current = os.stat(path)
    except OSError:
        return False
    return (held.st_dev, held.st_ino) == (current.st_dev, current.st_ino)


def _try_lock(path: Path, touch: bool = True) -> Optional[IO]:
    """Attempt a single non-blocking acquisition. Returns the locked handle or None."""
    handle = open(path, "a")
    try:
        portalocker.lock(handle, portalocker.LOCK_EX | portalocker.LOCK_NB)
    except portalocker.exceptions.LockException:
        handle.close()
        return None

    # The sidecar may have been replaced by a contender that stole a stale lock
    if not _same_file(handle, path):
        _release(handle)
        return None

    if touch:
        os.utime(path)
    return handle


def _release(handle: IO) -> None:
    try:
        portalocker.unlock(handle)
    finally:
        handle.close()


def _stale_stat(path: Path, stale: float) -> Optional[os.stat_result]:
    """Stat of the sidecar if it has gone unrefreshed for longer than ``stale``, else None."""
    try:
        st = os.stat(path)
    except FileNotFoundError:
        return None
    return st if time.time() - st.st_mtime > stale else None


def steal_guard_path_for(lock_path: Path) -> Path:
    return lock_path.with_name(f"{lock_path.name}.steal")


def _steal(path: Path, stale: float, seen: os.stat_result) -> bool:
    """Unlink an abandoned sidecar. Returns True if it was removed.

    Runs under an exclusive lock on the ``.steal`` guard, and only unlinks the
    file that was seen as stale: if another contender already replaced it, the
    path now holds a fresh sidecar and nothing is removed.
    """
    guard = _try_lock(steal_guard_path_for(path), touch=False)
    if guard is None:
        return False

    try:
        current = _stale_stat(path, stale)
        if current is None or (current.st_dev, current.st_ino) != (seen.st_dev, seen.st_ino):
            return False
        logger.warning("Lock %s not refreshed for over %.0fs, treating as abandoned", path, stale)
        with contextlib.suppress(FileNotFoundError):
            os.unlink(path)
        return True
    finally:
        _release(guard)


async def _keep_fresh(path: Path, handle: IO, interval: float) -> None:
    """Touch the sidecar while the lock is held so contenders don't steal it."""
    while True:
        await asyncio.sleep(interval)
        if not _same_file(handle, path):
            logger.warning("Lock %s was taken over by another process", path)
            return
        try:
            os.utime(path)
        except OSError as e:
            logger.warning("Could not refresh lock %s: %s", path, e)
            return


async def _acquire(
    path: Path,
    stale: float,
    retries: int,
    min_delay: float,
    max_delay: float,
) -> IO:
    delay = min_delay
    for attempt in range(retries + 1):
        handle = _try_lock(path)
        if handle is not None:
            if attempt:
                logger.debug("Acquired %s after %d retries", path, attempt)
            return handle

        seen = _stale_stat(path, stale)
        if seen is not None and _steal(path, stale, seen):
            continue

        if attempt < retries:
            await asyncio.sleep(delay)
            delay = min(delay * RETRY_BACKOFF_FACTOR, max_delay)

    raise LockTimeoutError(path, retries + 1)


@asynccontextmanager
async def memory_lock(
    lock_path: Union[str, Path],
    *,
    stale: float = STALE_SECONDS,
    retries: int = LOCK_RETRIES,
    min_delay: float = MIN_RETRY_DELAY,
    max_delay: float = MAX_RETRY_DELAY,
) -> AsyncIterator[None]:
    """Hold the exclusive lock on ``lock_path`` for the duration of the block.

    Args:
        lock_path: Sidecar file to lock (created with its parent if missing)
        stale: Seconds without refresh after which a held lock may be stolen
        retries: Retry budget after the first attempt
        min_delay: First back-off delay in seconds
        max_delay: Back-off ceiling in seconds

    Raises:
        LockTimeoutError: If the lock could not be acquired within the budget
    """
    path = Path(lock_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    # Append mode creates the sidecar without bumping the mtime of a held one
    with open(path, "a"):
        pass

    handle = await _acquire(path, stale, retries, min_delay, max_delay)
    refresher = asyncio.create_task(_keep_fresh(path, handle, stale / 2))
    try:
        yield
    finally:
        refresher.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await refresher
        _release(handle)


async def with_lock(lock_path: Union[str, Path], critical_section: Callable[[], Awaitable[T]], **options) -> T:
    """Run ``critical_section`` exactly once while holding the lock."""
    async with memory_lock(lock_path, **options):
        return await critical_section()
