"""
Per-key asyncio locks
Serializes work on one RO without blocking work on any other RO
"""

import asyncio
from contextlib import asynccontextmanager


class KeyedLock:
    """Lazily created asyncio.Lock per key, dropped once nobody holds or awaits it"""

    def __init__(self):
        self._locks: dict[str, asyncio.Lock] = {}
        self._waiters: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str):
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._waiters[key] = self._waiters.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[key] -= 1
            if self._waiters[key] == 0:
                del self._waiters[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)
