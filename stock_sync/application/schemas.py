from pydantic import AliasChoices, BaseModel, Field, field_validator, model_validator
from typing import Dict, List, Optional, Union
from datetime import datetime

from stock_sync.domain.models import InventoryEvent, Rules, SetRule

class InventoryLevelWebhook(BaseModel):
    """Payload of Shopify's inventory_levels/update topic."""
    inventory_item_id: Union[int, str] = Field(
        validation_alias=AliasChoices("inventory_item_id", "inventoryItemId")
    )
    location_id: Union[int, str] = Field(
        validation_alias=AliasChoices("location_id", "locationId")
    )
    available: Optional[int] = None
    updated_at: Optional[datetime] = None

    def to_event(self) -> InventoryEvent:
        return InventoryEvent(
            inventory_item_id=str(self.inventory_item_id),
            location_id=str(self.location_id),
            available=self.available,
        )

class SetRuleSchema(BaseModel):
    set_group: str = Field(alias="setGroup")
    components: List[str]

    class Config:
        populate_by_name = True

    @field_validator("components")
    @classmethod
    def _components_not_empty(cls, value: List[str]) -> List[str]:
        if not value:
            raise ValueError("a set needs at least one component group")
        return value

class RulesFile(BaseModel):
    alias_groups: Dict[str, List[str]] = Field(default_factory=dict, alias="aliasGroups")
    sets: List[SetRuleSchema] = Field(default_factory=list)

    class Config:
        populate_by_name = True

    @field_validator("alias_groups")
    @classmethod
    def _skus_not_blank(cls, value: Dict[str, List[str]]) -> Dict[str, List[str]]:
        for name, skus in value.items():
            if any(not sku.strip() for sku in skus):
                raise ValueError(f"alias group '{name}' contains a blank SKU")
        return value

    @model_validator(mode="after")
    def _sets_reference_known_groups(self) -> "RulesFile":
        for rule in self.sets:
            unknown = [g for g in [rule.set_group, *rule.components] if g not in self.alias_groups]
            if unknown:
                raise ValueError(
                    f"set '{rule.set_group}' references undefined alias groups: {', '.join(unknown)}"
                )
        return self

    def to_rules(self) -> Rules:
        return Rules(
            alias_groups={name: [sku.strip() for sku in skus] for name, skus in self.alias_groups.items()},
            sets=[SetRule(set_group=r.set_group, components=tuple(r.components)) for r in self.sets],
        )

class WebhookAck(BaseModel):
    status: str
    outcome: Optional[str] = None
    sku: Optional[str] = None
    groups: List[str] = []
    sets: List[str] = []
