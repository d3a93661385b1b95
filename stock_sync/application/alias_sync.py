import asyncio
from typing import Awaitable, Callable, List

from shared.core import get_logger
from stock_sync.domain.errors import PlatformError
from stock_sync.domain.models import LevelKey, Rules, SyncResult
from .cache import LevelCache
from .catalog import CatalogIndex
from .locks import KeyedLocks

logger = get_logger(__name__)

class AliasSync:
    """Drives every inventory item of an alias group to one quantity."""

    def __init__(
        self,
        catalog: CatalogIndex,
        rules: Rules,
        cache: LevelCache,
        platform,
        write_enabled: bool = True,
        write_delay: float = 0.3,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.catalog = catalog
        self.rules = rules
        self.cache = cache
        self.platform = platform
        self.write_enabled = write_enabled
        self.write_delay = write_delay
        self._sleep = sleep
        self._locks = KeyedLocks()
        self.writes = 0

    def items_for_group(self, group: str) -> List[str]:
        """Distinct inventory items of the group's SKUs, in configured order."""
        items: List[str] = []
        for sku in self.rules.alias_groups.get(group, []):
            for item_id in self.catalog.items_for(sku):
                if item_id not in items:
                    items.append(item_id)
        return items

    async def sync(self, group: str, location_id: str, target: int) -> SyncResult:
        result = SyncResult(group=group, location_id=location_id, target=target, dry_run=not self.write_enabled)
        if group not in self.rules.alias_groups:
            logger.warning(f"Alias group '{group}' is not configured")
            return result

        for item_id in self.items_for_group(group):
            async with self._locks.get(LevelKey(item_id, location_id)):
                await self._sync_item(item_id, location_id, target, result)

        logger.info(
            f"Alias group '{group}' synced to {target}",
            extra={
                'extra_fields': {
                    'group': group,
                    'location_id': location_id,
                    'target': target,
                    'written': result.written,
                    'unchanged': len(result.unchanged),
                    'unknown': result.unknown,
                    'failed': result.failed,
                    'dry_run': result.dry_run,
                }
            }
        )
        return result

    async def _sync_item(self, item_id: str, location_id: str, target: int, result: SyncResult) -> None:
        fields = {'group': result.group, 'item_id': item_id, 'location_id': location_id, 'target': target}

        current = await self.cache.get(item_id, location_id)
        if current is None:
            logger.warning(f"Skipping item {item_id}: current level unknown", extra={'extra_fields': fields})
            result.unknown.append(item_id)
            return
        if current == target:
            result.unchanged.append(item_id)
            return

        await self._sleep(self.write_delay)

        if not self.write_enabled:
            logger.info(
                f"DRY RUN: would set item {item_id} from {current} to {target}",
                extra={'extra_fields': {**fields, 'current': current}}
            )
            self.cache.seed(item_id, location_id, target)
            result.written.append(item_id)
            return

        try:
            await self.platform.write_level(item_id, location_id, target)
        except PlatformError as e:
            logger.error(f"Failed to set item {item_id} to {target}: {e}", extra={'extra_fields': fields})
            result.failed.append(item_id)
            return

        self.writes += 1
        self.cache.seed(item_id, location_id, target)
        result.written.append(item_id)
        logger.info(
            f"Set item {item_id} from {current} to {target}",
            extra={'extra_fields': {**fields, 'current': current}}
        )
