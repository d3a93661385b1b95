import asyncio
import weakref
from typing import Hashable

class KeyedLocks:
    """One asyncio.Lock per key, dropped once no coroutine holds a reference."""

    def __init__(self):
        self._locks: "weakref.WeakValueDictionary[Hashable, asyncio.Lock]" = weakref.WeakValueDictionary()

    def get(self, key: Hashable) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    def __len__(self) -> int:
        return len(self._locks)
