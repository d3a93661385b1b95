from dataclasses import dataclass
from typing import Dict, FrozenSet, List, Optional

from shared.core import get_logger
from stock_sync.domain.models import Rules, SetOutcome, SetRule
from .alias_sync import AliasSync
from .cache import LevelCache
from .catalog import CatalogIndex

logger = get_logger(__name__)

@dataclass(frozen=True)
class EventContext:
    """What the current webhook already tells us: these groups are at `available`."""
    location_id: str
    available: int
    triggered_groups: FrozenSet[str]

class SetResolver:
    """Derives bundle quantities as the minimum of their component groups."""

    def __init__(self, catalog: CatalogIndex, rules: Rules, cache: LevelCache, alias_sync: AliasSync):
        self.catalog = catalog
        self.rules = rules
        self.cache = cache
        self.alias_sync = alias_sync

    async def resolve_component_qty(self, group: str, location_id: str, context: EventContext) -> Optional[int]:
        if group in context.triggered_groups:
            return context.available

        skus = self.rules.alias_groups.get(group) or []
        if not skus:
            logger.warning(f"Component group '{group}' has no SKUs")
            return None
        representative = skus[0]
        items = self.catalog.items_for(representative)
        if not items:
            logger.warning(
                f"Representative SKU {representative} of group '{group}' is not in the catalog",
                extra={'extra_fields': {'group': group, 'sku': representative}}
            )
            return None
        return await self.cache.get(items[0], location_id)

    async def resolve_set(self, rule: SetRule, context: EventContext) -> SetOutcome:
        components: Dict[str, Optional[int]] = {}
        for group in rule.components:
            components[group] = await self.resolve_component_qty(group, context.location_id, context)

        unresolved = [group for group, qty in components.items() if qty is None]
        if unresolved:
            logger.warning(
                f"Skipping set '{rule.set_group}': unresolved components {', '.join(unresolved)}",
                extra={'extra_fields': {'set_group': rule.set_group, 'components': components}}
            )
            return SetOutcome(set_group=rule.set_group, quantity=None, components=components)

        quantity = min(components.values())
        logger.info(
            f"Set '{rule.set_group}' resolves to {quantity}",
            extra={'extra_fields': {'set_group': rule.set_group, 'components': components}}
        )
        sync = await self.alias_sync.sync(rule.set_group, context.location_id, quantity)
        return SetOutcome(set_group=rule.set_group, quantity=quantity, components=components, sync=sync)

    async def resolve_sets(self, context: EventContext) -> List[SetOutcome]:
        outcomes = []
        for rule in self.rules.sets_affected_by(list(context.triggered_groups)):
            outcomes.append(await self.resolve_set(rule, context))
        return outcomes
