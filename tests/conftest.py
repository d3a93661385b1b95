import asyncio

import pytest

from stock_sync.application.catalog import CatalogIndex
from stock_sync.application.service import ReconciliationEngine
from stock_sync.domain.errors import PlatformError
from stock_sync.domain.models import CatalogVariant, Rules, SetRule

LOCATION = "L1"


class FakePlatform:
    """In-memory stand-in for the Shopify client, recording every call.

    Reads and writes yield to the event loop once, so concurrent callers
    interleave the way they would over the network.
    """

    def __init__(self, pages=None, levels=None):
        self.pages = pages or []
        self.levels = dict(levels or {})
        self.page_requests = []
        self.reads = []
        self.writes = []
        self.fail_reads = set()
        self.fail_writes = set()
        self.fail_page = None
        self.in_flight = set()
        self.overlapping_writes = []

    async def list_catalog_page(self, url=None):
        index = 0 if url is None else int(url.split("page=")[1])
        self.page_requests.append(url)
        if self.fail_page == index:
            raise PlatformError("catalog page unavailable", status_code=503)
        if index >= len(self.pages):
            return [], None
        next_url = f"https://shop.test/products.json?page={index + 1}" if index + 1 < len(self.pages) else None
        return self.pages[index], next_url

    async def read_level(self, item_id, location_id):
        self.reads.append(item_id)
        await asyncio.sleep(0)
        if item_id in self.fail_reads:
            raise PlatformError("read failed", status_code=500)
        return self.levels.get((item_id, location_id))

    async def write_level(self, item_id, location_id, available):
        if item_id in self.fail_writes:
            raise PlatformError("write failed", status_code=422)
        key = (item_id, location_id)
        if key in self.in_flight:
            self.overlapping_writes.append(key)
        self.in_flight.add(key)
        try:
            await asyncio.sleep(0)
            self.writes.append((item_id, location_id, available))
            self.levels[key] = available
        finally:
            self.in_flight.discard(key)


def variant(sku, item_id):
    return CatalogVariant(sku=sku, inventory_item_id=item_id)


CATALOG = [
    [variant("TIRE-A", "111"), variant("TIRE-B", "222")],
    [variant("RIM-A", "333"), variant("KIT-TIRE-RIM", "444"), variant("LOOSE", "999")],
]


@pytest.fixture
def rules():
    return Rules(
        alias_groups={
            "tire": ["TIRE-A", "TIRE-B"],
            "rim": ["RIM-A"],
            "bundle-kit": ["KIT-TIRE-RIM"],
        },
        sets=[SetRule(set_group="bundle-kit", components=("tire", "rim"))],
    )


@pytest.fixture
def platform():
    return FakePlatform(
        pages=[list(page) for page in CATALOG],
        levels={
            ("111", LOCATION): 9,
            ("222", LOCATION): 9,
            ("333", LOCATION): 7,
            ("444", LOCATION): 2,
        },
    )


@pytest.fixture
def make_engine(platform, rules):
    """Engine over the fake platform; the catalog index is built from its pages."""
    sleeps = []

    async def fake_sleep(seconds):
        sleeps.append(seconds)

    def _make(rules_override=None, **kwargs):
        catalog = asyncio.run(CatalogIndex.build(platform))
        options = {"cache_ttl": 60.0, "dedup_window": 2.0, "write_delay": 0.3, "sleep": fake_sleep}
        options.update(kwargs)
        engine = ReconciliationEngine(catalog, rules_override or rules, platform, **options)
        engine.sleeps = sleeps
        return engine

    return _make
