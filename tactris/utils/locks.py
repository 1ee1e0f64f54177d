"""
Per-key asyncio locking.

Serializes work that targets the same key (a user's statistics row) while
letting different keys proceed concurrently. Locks live in a weak-value
registry, so a key's lock disappears once no coroutine holds or awaits it.
"""

import asyncio
import weakref
from contextlib import asynccontextmanager
from typing import AsyncIterator, Hashable


class KeyedLock:
    """Registry of one asyncio.Lock per key."""

    def __init__(self):
        self._locks: "weakref.WeakValueDictionary[Hashable, asyncio.Lock]" = weakref.WeakValueDictionary()

    def _get_lock(self, key: Hashable) -> asyncio.Lock:
        # No await between lookup and insert, so this is atomic on the event loop
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    @asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncIterator[None]:
        """Hold the lock for ``key`` for the duration of the block."""
        lock = self._get_lock(key)
        async with lock:
            yield

    def is_locked(self, key: Hashable) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()
