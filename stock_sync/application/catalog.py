from collections import defaultdict
from typing import Dict, List, Optional

from shared.core import get_logger
from stock_sync.domain.errors import CatalogBuildError, PlatformError

logger = get_logger(__name__)

class CatalogIndex:
    """Inventory item id <-> SKU index. Read-only once built."""

    def __init__(self, item_to_sku: Dict[str, str], sku_to_items: Dict[str, List[str]]):
        self._item_to_sku = dict(item_to_sku)
        self._sku_to_items = {sku: list(items) for sku, items in sku_to_items.items()}

    @classmethod
    async def build(cls, platform) -> "CatalogIndex":
        """Page through the whole catalog. Any page failure aborts the build."""
        item_to_sku: Dict[str, str] = {}
        sku_to_items: Dict[str, List[str]] = defaultdict(list)
        url = None
        pages = 0

        while True:
            try:
                variants, next_url = await platform.list_catalog_page(url)
            except PlatformError as e:
                raise CatalogBuildError(f"Catalog listing failed on page {pages + 1}: {e}") from e
            pages += 1
            if not variants:
                break

            for variant in variants:
                sku = (variant.sku or "").strip()
                if not sku or not variant.inventory_item_id:
                    continue
                item_id = str(variant.inventory_item_id)
                item_to_sku[item_id] = sku
                sku_to_items[sku].append(item_id)

            if not next_url:
                break
            url = next_url

        logger.info(
            "Catalog index built",
            extra={
                'extra_fields': {
                    'pages': pages,
                    'items': len(item_to_sku),
                    'skus': len(sku_to_items),
                }
            }
        )
        return cls(item_to_sku, sku_to_items)

    def sku_for(self, item_id: str) -> Optional[str]:
        return self._item_to_sku.get(str(item_id))

    def items_for(self, sku: str) -> List[str]:
        return list(self._sku_to_items.get(sku, []))

    def __len__(self) -> int:
        return len(self._item_to_sku)
