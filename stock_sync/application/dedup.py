import time
from typing import Callable, Optional

from cachetools import TTLCache

from stock_sync.domain.models import LevelKey

class DedupFilter:
    """
    Suppresses a repeat of the same (item, location, available) seen less
    than window seconds ago. Never consulted for quantity truth.

    should_suppress has no await point, so concurrent handlers on one event
    loop cannot interleave inside the check-and-record.
    """

    def __init__(
        self,
        window: float = 2.0,
        maxsize: int = 10000,
        timer: Callable[[], float] = time.monotonic,
    ):
        self.window = window
        self._timer = timer
        self._entries: TTLCache = TTLCache(maxsize=maxsize, ttl=window, timer=timer)

    def should_suppress(self, item_id: str, location_id: str, available: int, now: Optional[float] = None) -> bool:
        now = self._timer() if now is None else now
        key = LevelKey(str(item_id), str(location_id))

        entry = self._entries.get(key)
        if entry is not None:
            last_available, last_seen = entry
            if last_available == available and now - last_seen < self.window:
                return True

        self._entries[key] = (available, now)
        return False

    def __len__(self) -> int:
        return len(self._entries)
