import asyncio
from collections import Counter
from typing import Any, Awaitable, Callable, Dict, Optional

from shared.core import get_logger
from stock_sync.core_settings import Settings
from stock_sync.domain.models import EventOutcome, EventResult, InventoryEvent, Rules
from .alias_sync import AliasSync
from .cache import LevelCache
from .catalog import CatalogIndex
from .dedup import DedupFilter
from .set_resolver import EventContext, SetResolver

logger = get_logger(__name__)

class ReconciliationEngine:
    """
    Owns the catalog index, level cache and dedup window for one process
    and applies inventory_levels/update events: alias groups first, then
    the sets built from them.
    """

    def __init__(
        self,
        catalog: CatalogIndex,
        rules: Rules,
        platform,
        allowed_location_id: Optional[str] = None,
        write_enabled: bool = True,
        cache_ttl: float = 1.0,
        dedup_window: float = 2.0,
        write_delay: float = 0.3,
        max_entries: int = 10000,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.catalog = catalog
        self.rules = rules
        self.allowed_location_id = str(allowed_location_id) if allowed_location_id else None
        self.cache = LevelCache(platform, ttl=cache_ttl, maxsize=max_entries)
        self.dedup = DedupFilter(window=dedup_window, maxsize=max_entries)
        self.alias_sync = AliasSync(
            catalog, rules, self.cache, platform,
            write_enabled=write_enabled, write_delay=write_delay, sleep=sleep,
        )
        self.set_resolver = SetResolver(catalog, rules, self.cache, self.alias_sync)
        self.outcomes: Counter = Counter()

    @classmethod
    async def create(cls, settings: Settings, platform, rules: Rules) -> "ReconciliationEngine":
        """Build the catalog index and wire an engine from settings."""
        catalog = await CatalogIndex.build(platform)
        return cls(
            catalog,
            rules,
            platform,
            allowed_location_id=settings.ALLOWED_LOCATION_ID,
            write_enabled=settings.WRITE_ENABLED,
            cache_ttl=settings.CACHE_TTL_SECONDS,
            dedup_window=settings.DEDUP_WINDOW_SECONDS,
            write_delay=settings.WRITE_DELAY_SECONDS,
            max_entries=settings.CACHE_MAX_ENTRIES,
        )

    @property
    def write_enabled(self) -> bool:
        return self.alias_sync.write_enabled

    def _finish(self, result: EventResult, event: InventoryEvent, message: str) -> EventResult:
        self.outcomes[result.outcome.value] += 1
        logger.info(
            message,
            extra={
                'extra_fields': {
                    'outcome': result.outcome.value,
                    'item_id': event.inventory_item_id,
                    'location_id': event.location_id,
                    'available': event.available,
                    'sku': result.sku,
                    'groups': result.groups,
                }
            }
        )
        return result

    async def handle_event(self, event: InventoryEvent) -> EventResult:
        if event.available is None:
            return self._finish(EventResult(EventOutcome.IGNORED_UNTRACKED), event,
                                f"Ignoring untracked item {event.inventory_item_id}")

        if self.allowed_location_id and event.location_id != self.allowed_location_id:
            return self._finish(EventResult(EventOutcome.IGNORED_LOCATION), event,
                                f"Ignoring event for location {event.location_id}")

        self.cache.seed(event.inventory_item_id, event.location_id, event.available)

        if self.dedup.should_suppress(event.inventory_item_id, event.location_id, event.available):
            return self._finish(EventResult(EventOutcome.DUPLICATE), event,
                                f"Duplicate event for item {event.inventory_item_id} suppressed")

        sku = self.catalog.sku_for(event.inventory_item_id)
        if sku is None:
            return self._finish(EventResult(EventOutcome.UNKNOWN_ITEM), event,
                                f"Item {event.inventory_item_id} is not in the catalog index")

        groups = self.rules.groups_containing(sku)
        if not groups:
            return self._finish(EventResult(EventOutcome.NO_GROUPS, sku=sku), event,
                                f"SKU {sku} is not in any alias group")

        result = EventResult(EventOutcome.SYNCED, sku=sku, groups=groups)
        for group in groups:
            result.group_syncs.append(
                await self.alias_sync.sync(group, event.location_id, event.available)
            )

        context = EventContext(
            location_id=event.location_id,
            available=event.available,
            triggered_groups=frozenset(groups),
        )
        result.set_outcomes = await self.set_resolver.resolve_sets(context)

        return self._finish(result, event, f"Event for SKU {sku} applied to {len(groups)} group(s) "
                                           f"and {len(result.set_outcomes)} set(s)")

    def stats(self) -> Dict[str, Any]:
        return {
            "catalog_items": len(self.catalog),
            "alias_groups": len(self.rules.alias_groups),
            "sets": len(self.rules.sets),
            "cache_entries": len(self.cache),
            "dedup_entries": len(self.dedup),
            "platform_reads": self.cache.reads,
            "platform_writes": self.alias_sync.writes,
            "write_enabled": self.write_enabled,
            "events": dict(self.outcomes),
        }
