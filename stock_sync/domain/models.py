from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, NamedTuple, Optional, Tuple

class LevelKey(NamedTuple):
    """Identifies one inventory level: an inventory item at a location."""
    item_id: str
    location_id: str

@dataclass(frozen=True)
class InventoryEvent:
    """Decoded inventory_levels/update webhook."""
    inventory_item_id: str
    location_id: str
    available: Optional[int]

    @property
    def key(self) -> LevelKey:
        return LevelKey(self.inventory_item_id, self.location_id)

@dataclass(frozen=True)
class CatalogVariant:
    sku: Optional[str]
    inventory_item_id: Optional[str]

@dataclass(frozen=True)
class SetRule:
    set_group: str
    components: Tuple[str, ...]

@dataclass
class Rules:
    """Alias groups and set rules, loaded once at startup."""
    alias_groups: Dict[str, List[str]] = field(default_factory=dict)
    sets: List[SetRule] = field(default_factory=list)

    def groups_containing(self, sku: str) -> List[str]:
        return [name for name, skus in self.alias_groups.items() if sku in skus]

    def sets_affected_by(self, groups: List[str]) -> List[SetRule]:
        triggered = set(groups)
        return [rule for rule in self.sets if triggered.intersection(rule.components)]

class EventOutcome(str, Enum):
    IGNORED_UNTRACKED = "ignored_untracked"
    IGNORED_LOCATION = "ignored_location"
    DUPLICATE = "duplicate"
    UNKNOWN_ITEM = "unknown_item"
    NO_GROUPS = "no_groups"
    SYNCED = "synced"

@dataclass
class SyncResult:
    """Per-item outcome of driving one alias group to a target quantity."""
    group: str
    location_id: str
    target: int
    written: List[str] = field(default_factory=list)
    unchanged: List[str] = field(default_factory=list)
    unknown: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    dry_run: bool = False

@dataclass
class SetOutcome:
    set_group: str
    quantity: Optional[int]
    components: Dict[str, Optional[int]]
    sync: Optional[SyncResult] = None

    @property
    def skipped(self) -> bool:
        return self.sync is None

@dataclass
class EventResult:
    outcome: EventOutcome
    sku: Optional[str] = None
    groups: List[str] = field(default_factory=list)
    group_syncs: List[SyncResult] = field(default_factory=list)
    set_outcomes: List[SetOutcome] = field(default_factory=list)
