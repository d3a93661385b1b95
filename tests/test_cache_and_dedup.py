import asyncio

from conftest import FakePlatform
from stock_sync.application.cache import LevelCache
from stock_sync.application.dedup import DedupFilter


class Clock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


class TestLevelCache:
    def setup_method(self):
        self.clock = Clock()
        self.platform = FakePlatform(levels={("1", "L1"): 5})
        self.cache = LevelCache(self.platform, ttl=1.0, timer=self.clock)

    def get(self, item_id="1", location_id="L1"):
        return asyncio.run(self.cache.get(item_id, location_id))

    def test_fresh_value_is_served_without_a_read(self):
        assert self.get() == 5
        self.clock.now += 0.5
        assert self.get() == 5
        assert self.platform.reads == ["1"]

    def test_stale_value_is_read_again(self):
        self.get()
        self.platform.levels[("1", "L1")] = 8
        self.clock.now += 1.0

        assert self.get() == 8
        assert self.platform.reads == ["1", "1"]

    def test_seed_overwrites_and_refreshes(self):
        self.get()
        self.clock.now += 0.9
        self.cache.seed("1", "L1", 0)
        self.clock.now += 0.9

        assert self.get() == 0
        assert self.platform.reads == ["1"]

    def test_missing_level_is_unknown_and_not_cached(self):
        assert self.get(item_id="2") is None
        assert self.get(item_id="2") is None
        assert self.platform.reads == ["2", "2"]

    def test_read_failure_is_unknown(self):
        self.platform.fail_reads.add("1")

        assert self.get() is None

    def test_concurrent_gets_share_one_read(self):
        async def both():
            return await asyncio.gather(self.cache.get("1", "L1"), self.cache.get("1", "L1"))

        assert asyncio.run(both()) == [5, 5]
        assert self.platform.reads == ["1"]

    def test_concurrent_gets_for_different_keys_read_each(self):
        self.platform.levels[("2", "L1")] = 6

        async def both():
            return await asyncio.gather(self.cache.get("1", "L1"), self.cache.get("2", "L1"))

        assert asyncio.run(both()) == [5, 6]
        assert sorted(self.platform.reads) == ["1", "2"]

    def test_only_the_quantity_is_stored(self):
        self.cache.seed("1", "L1", 3)

        assert self.cache._entries[("1", "L1")] == 3

    def test_keys_are_per_location(self):
        self.cache.seed("1", "L2", 3)

        assert self.get() == 5
        assert self.get(location_id="L2") == 3


class TestDedupFilter:
    def setup_method(self):
        self.clock = Clock()
        self.dedup = DedupFilter(window=2.0, timer=self.clock)

    def test_first_event_passes(self):
        assert not self.dedup.should_suppress("1", "L1", 4)

    def test_identical_event_inside_window_is_suppressed(self):
        self.dedup.should_suppress("1", "L1", 4)
        self.clock.now += 1.5

        assert self.dedup.should_suppress("1", "L1", 4)

    def test_identical_event_after_window_passes(self):
        self.dedup.should_suppress("1", "L1", 4)
        self.clock.now += 2.0

        assert not self.dedup.should_suppress("1", "L1", 4)

    def test_different_quantity_always_passes(self):
        self.dedup.should_suppress("1", "L1", 4)

        assert not self.dedup.should_suppress("1", "L1", 5)
        assert not self.dedup.should_suppress("1", "L1", 4)

    def test_other_location_is_a_different_key(self):
        self.dedup.should_suppress("1", "L1", 4)

        assert not self.dedup.should_suppress("1", "L2", 4)

    def test_explicit_now_is_respected(self):
        self.dedup.should_suppress("1", "L1", 4, now=1000.0)

        assert self.dedup.should_suppress("1", "L1", 4, now=1001.9)
