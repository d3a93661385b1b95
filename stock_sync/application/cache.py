import time
from typing import Callable, Optional

from cachetools import TTLCache

from shared.core import get_logger
from stock_sync.domain.errors import PlatformError
from stock_sync.domain.models import LevelKey
from .locks import KeyedLocks

logger = get_logger(__name__)

class LevelCache:
    """
    Read-through cache of "available" per (item, location).

    An entry is served while younger than ttl seconds; after that the next
    get reads the platform again. Every observation (webhook, read, write)
    replaces the entry. Concurrent gets for one key share a single read.
    """

    def __init__(
        self,
        platform,
        ttl: float = 1.0,
        maxsize: int = 10000,
        timer: Callable[[], float] = time.monotonic,
    ):
        self._platform = platform
        self._entries: TTLCache = TTLCache(maxsize=maxsize, ttl=ttl, timer=timer)
        self._locks = KeyedLocks()
        self.reads = 0

    def _fresh(self, key: LevelKey) -> Optional[int]:
        return self._entries.get(key)

    def seed(self, item_id: str, location_id: str, available: int) -> None:
        self._entries[LevelKey(str(item_id), str(location_id))] = available

    async def get(self, item_id: str, location_id: str) -> Optional[int]:
        key = LevelKey(str(item_id), str(location_id))
        cached = self._fresh(key)
        if cached is not None:
            return cached

        async with self._locks.get(key):
            # filled by a concurrent read or seed while waiting
            cached = self._fresh(key)
            if cached is not None:
                return cached

            self.reads += 1
            try:
                available = await self._platform.read_level(key.item_id, key.location_id)
            except PlatformError as e:
                logger.warning(
                    f"Inventory level read failed for item {key.item_id}: {e}",
                    extra={'extra_fields': {'item_id': key.item_id, 'location_id': key.location_id}}
                )
                return None

            if available is None:
                logger.info(
                    f"No inventory level for item {key.item_id} at location {key.location_id}",
                    extra={'extra_fields': {'item_id': key.item_id, 'location_id': key.location_id}}
                )
                return None

            self._entries[key] = available
            return available

    def __len__(self) -> int:
        return len(self._entries)
