"""
poapbot.engine.locks — Per-key asyncio serialization
=====================================================

Reaction events for the same (message, author) pair must not interleave
between the ledger upsert and the delivery write, otherwise two events can
both read ``delivered == False`` and both deliver.  :class:`KeyedLock`
hands out one :class:`asyncio.Lock` per key and forgets it once nobody
holds or waits on it, so memory tracks in-flight keys only.

This narrows the duplicate window to a single process; separate processes
sharing one database are still at-least-once.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Hashable
from contextlib import asynccontextmanager


class KeyedLock:
    def __init__(self) -> None:
        self._locks: dict[Hashable, asyncio.Lock] = {}
        self._users: dict[Hashable, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    def locked(self, key: Hashable) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncIterator[None]:
        """Hold the lock for *key* for the duration of the ``async with``."""
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]
