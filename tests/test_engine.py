import asyncio

from conftest import LOCATION, variant
from stock_sync.domain.models import EventOutcome, InventoryEvent, Rules, SetRule


def handle(engine, item_id, available, location=LOCATION):
    return asyncio.run(engine.handle_event(InventoryEvent(item_id, location, available)))


class TestAliasGroupFanOut:
    def test_webhook_value_is_pushed_to_sibling_skus(self, make_engine, platform):
        engine = make_engine()

        result = handle(engine, "111", 4)

        assert result.outcome == EventOutcome.SYNCED
        assert result.sku == "TIRE-A"
        assert result.groups == ["tire"]
        assert ("222", LOCATION, 4) in platform.writes
        # the triggering item was seeded from the webhook, so no read and no write
        assert "111" not in platform.reads
        assert all(write[0] != "111" for write in platform.writes)
        assert result.group_syncs[0].unchanged == ["111"]

    def test_items_already_at_target_are_not_written(self, make_engine, platform):
        platform.levels[("222", LOCATION)] = 4
        platform.levels[("444", LOCATION)] = 4
        engine = make_engine()

        handle(engine, "111", 4)

        assert platform.writes == []

    def test_writes_are_paced_before_each_write(self, make_engine, platform):
        engine = make_engine(write_delay=0.3)

        handle(engine, "111", 4)

        assert len(platform.writes) == 2
        assert engine.sleeps == [0.3, 0.3]

    def test_cache_holds_target_after_sync(self, make_engine, platform):
        engine = make_engine()

        handle(engine, "111", 4)
        reads_before = len(platform.reads)

        for item_id in engine.alias_sync.items_for_group("tire"):
            assert asyncio.run(engine.cache.get(item_id, LOCATION)) == 4
        assert len(platform.reads) == reads_before

    def test_write_failure_does_not_stop_the_event(self, make_engine, platform):
        platform.fail_writes.add("222")
        engine = make_engine()

        result = handle(engine, "111", 4)

        assert result.group_syncs[0].failed == ["222"]
        assert ("444", LOCATION, 4) in platform.writes

    def test_unreadable_item_is_skipped(self, make_engine, platform):
        platform.fail_reads.add("222")
        engine = make_engine()

        result = handle(engine, "111", 4)

        assert result.group_syncs[0].unknown == ["222"]
        assert all(write[0] != "222" for write in platform.writes)

    def test_item_shared_by_two_skus_is_written_once(self, make_engine, platform, rules):
        rules.alias_groups["tire"] = ["TIRE-A", "TIRE-B", "TIRE-B-DUP"]
        platform.pages[0].append(variant("TIRE-B-DUP", "222"))
        engine = make_engine()

        handle(engine, "111", 4)

        assert [w for w in platform.writes if w[0] == "222"] == [("222", LOCATION, 4)]


class TestSetResolution:
    def test_set_quantity_is_minimum_of_components(self, make_engine, platform):
        engine = make_engine()

        result = handle(engine, "111", 4)

        outcome = result.set_outcomes[0]
        assert outcome.set_group == "bundle-kit"
        assert outcome.components == {"tire": 4, "rim": 7}
        assert outcome.quantity == 4
        assert ("444", LOCATION, 4) in platform.writes

    def test_smaller_non_triggered_component_wins(self, make_engine, platform):
        platform.levels[("333", LOCATION)] = 1
        engine = make_engine()

        result = handle(engine, "111", 4)

        assert result.set_outcomes[0].quantity == 1
        assert ("444", LOCATION, 1) in platform.writes

    def test_set_skipped_when_a_component_is_unknown(self, make_engine, platform):
        del platform.levels[("333", LOCATION)]
        engine = make_engine()

        result = handle(engine, "111", 4)

        outcome = result.set_outcomes[0]
        assert outcome.skipped
        assert outcome.components["rim"] is None
        assert all(write[0] != "444" for write in platform.writes)

    def test_set_triggered_from_rim_reads_tire_representative(self, make_engine, platform):
        engine = make_engine()

        result = handle(engine, "333", 5)

        assert result.groups == ["rim"]
        # first SKU of the tire group is TIRE-A -> item 111
        assert result.set_outcomes[0].components == {"tire": 9, "rim": 5}
        assert ("444", LOCATION, 5) in platform.writes

    def test_phase_two_writes_even_when_set_group_was_synced_in_phase_one(self, make_engine, platform):
        rules = Rules(
            alias_groups={"tire": ["TIRE-A"], "rim": ["RIM-A", "KIT-TIRE-RIM"]},
            sets=[SetRule(set_group="rim", components=("tire", "rim"))],
        )
        platform.levels[("111", LOCATION)] = 2
        engine = make_engine(rules_override=rules)

        handle(engine, "333", 5)

        # phase 1 drives rim to 5, phase 2 drives it to min(2, 5)
        assert platform.writes == [
            ("444", LOCATION, 5),
            ("333", LOCATION, 2),
            ("444", LOCATION, 2),
        ]

    def test_sets_without_triggered_components_are_untouched(self, make_engine, platform, rules):
        rules.alias_groups["other"] = ["LOOSE"]
        rules.sets.append(SetRule(set_group="bundle-kit", components=("other",)))
        engine = make_engine()

        result = handle(engine, "111", 4)

        assert [o.set_group for o in result.set_outcomes] == ["bundle-kit"]
        assert result.set_outcomes[0].components == {"tire": 4, "rim": 7}


class TestEventFiltering:
    def test_duplicate_event_within_window_is_suppressed(self, make_engine, platform):
        engine = make_engine()

        first = handle(engine, "111", 4)
        writes = list(platform.writes)
        second = handle(engine, "111", 4)

        assert first.outcome == EventOutcome.SYNCED
        assert second.outcome == EventOutcome.DUPLICATE
        assert platform.writes == writes

    def test_changed_quantity_is_never_suppressed(self, make_engine):
        engine = make_engine()

        handle(engine, "111", 4)
        result = handle(engine, "111", 3)

        assert result.outcome == EventOutcome.SYNCED

    def test_unknown_item_makes_no_platform_calls(self, make_engine, platform):
        engine = make_engine()

        result = handle(engine, "12345", 4)

        assert result.outcome == EventOutcome.UNKNOWN_ITEM
        assert platform.reads == []
        assert platform.writes == []
        # the webhook value is still recorded
        assert len(engine.cache) == 1

    def test_sku_without_group_is_ignored(self, make_engine, platform):
        engine = make_engine()

        result = handle(engine, "999", 4)

        assert result.outcome == EventOutcome.NO_GROUPS
        assert result.sku == "LOOSE"
        assert platform.writes == []

    def test_other_location_is_ignored(self, make_engine, platform):
        engine = make_engine(allowed_location_id="L1")

        result = handle(engine, "111", 4, location="L2")

        assert result.outcome == EventOutcome.IGNORED_LOCATION
        assert len(engine.cache) == 0
        assert platform.reads == []

    def test_allowed_location_is_processed(self, make_engine):
        engine = make_engine(allowed_location_id="L1")

        assert handle(engine, "111", 4).outcome == EventOutcome.SYNCED

    def test_untracked_item_is_ignored(self, make_engine, platform):
        engine = make_engine()

        result = handle(engine, "111", None)

        assert result.outcome == EventOutcome.IGNORED_UNTRACKED
        assert platform.reads == []

    def test_outcomes_are_counted(self, make_engine):
        engine = make_engine()

        handle(engine, "111", 4)
        handle(engine, "111", 4)
        handle(engine, "12345", 1)

        assert engine.stats()["events"] == {"synced": 1, "duplicate": 1, "unknown_item": 1}


class TestDryRun:
    def test_no_writes_but_cache_reflects_intent(self, make_engine, platform):
        engine = make_engine(write_enabled=False)

        result = handle(engine, "111", 4)

        assert platform.writes == []
        assert result.group_syncs[0].dry_run
        assert result.group_syncs[0].written == ["222"]
        assert asyncio.run(engine.cache.get("222", LOCATION)) == 4
        assert asyncio.run(engine.cache.get("444", LOCATION)) == 4
        assert platform.levels[("222", LOCATION)] == 9


class TestConcurrentEvents:
    def test_events_for_one_group_write_each_level_once(self, make_engine, platform):
        engine = make_engine()

        async def both():
            return await asyncio.gather(
                engine.handle_event(InventoryEvent("111", LOCATION, 4)),
                engine.handle_event(InventoryEvent("222", LOCATION, 4)),
            )

        first, second = asyncio.run(both())

        assert first.outcome == second.outcome == EventOutcome.SYNCED
        keys = [(item_id, location_id) for item_id, location_id, _ in platform.writes]
        assert len(keys) == len(set(keys))
        assert platform.overlapping_writes == []
        assert ("444", LOCATION, 4) in platform.writes
        assert platform.levels[("222", LOCATION)] == 4
        assert platform.levels[("444", LOCATION)] == 4

    def test_concurrent_events_never_overlap_writes_to_one_level(self, make_engine, platform):
        engine = make_engine()

        async def both():
            await asyncio.gather(
                engine.handle_event(InventoryEvent("111", LOCATION, 4)),
                engine.handle_event(InventoryEvent("111", LOCATION, 5)),
            )

        asyncio.run(both())

        assert platform.overlapping_writes == []
        assert platform.writes
