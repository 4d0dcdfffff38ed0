"""Process-wide memory store handle.

Host adapters share one ``Mind`` per process. The handle opens it on first use;
concurrent first callers wait on the same open instead of racing to open the
file twice.
"""

import asyncio
from typing import Any, Optional

from mindvault.store import Mind


class MindHandle:
    """Lazily opened, shared ``Mind`` instance.

    Args:
        **config: Arguments forwarded to ``Mind.open`` on first use
    """

    def __init__(self, **config: Any):
        self._config = config
        self._mind: Optional[Mind] = None
        self._lock: Optional[asyncio.Lock] = None

    @property
    def is_open(self) -> bool:
        return self._mind is not None

    async def get(self) -> Mind:
        if self._mind is not None:
            return self._mind

        if self._lock is None:
            self._lock = asyncio.Lock()
        async with self._lock:
            if self._mind is None:
                self._mind = await Mind.open(**self._config)
        return self._mind

    def reset(self) -> None:
        self._mind = None
        self._lock = None


# Singleton instance
_default_handle: Optional[MindHandle] = None


def get_mind_handle(**config: Any) -> MindHandle:
    """Return the process-wide handle, creating it with ``config`` on first call.

    Later calls return the existing handle; their config is ignored.
    """
    global _default_handle
    if _default_handle is None:
        _default_handle = MindHandle(**config)
    return _default_handle


async def get_mind(**config: Any) -> Mind:
    """Open (once) and return the process-wide store."""
    return await get_mind_handle(**config).get()


def reset_mind() -> None:
    """Forget the process-wide store (for tests)."""
    global _default_handle
    _default_handle = None
