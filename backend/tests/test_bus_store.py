"""
Tests for the in-memory reactive bus store.
"""
import pytest

from services.bus_store import BusNotFoundError, InMemoryBusStore, normalize_stops


# ============================================================
# READS AND WRITES
# ============================================================

class TestBusRecords:

    def test_unknown_reads_are_empty(self, store):
        assert store.get_bus("nope") is None
        assert store.get_stops("nope") == []
        assert store.list_buses() == []

    def test_create_and_get(self, seeded_store):
        bus = seeded_store.get_bus("bus-1")
        assert bus.name == "Route 1"
        assert bus.driver_name == "R. Kumar"
        assert bus.start_time == "16:30"
        assert bus.sharing is False
        assert [b.id for b in seeded_store.list_buses()] == ["bus-1"]

    def test_duplicate_create_rejected(self, seeded_store):
        with pytest.raises(ValueError):
            seeded_store.create_bus({"id": "bus-1"})

    def test_update_unknown_raises(self, store):
        with pytest.raises(BusNotFoundError):
            store.update_bus("ghost", {"name": "x"})
        with pytest.raises(KeyError):
            store.set_stops("ghost", [])

    def test_update_is_partial_merge(self, seeded_store):
        seeded_store.update_bus("bus-1", {"sim": {"active": True, "speedKmph": 40, "offsetKm": 2.5, "lastUpdateAt": 1000}})
        bus = seeded_store.update_bus("bus-1", {"sim": {"speedKmph": 55}})

        assert bus.name == "Route 1"
        assert bus.sim.speed_kmph == 55
        assert bus.sim.offset_km == 2.5
        assert bus.sim.last_update_at == 1000
        assert bus.sharing is True

    def test_update_cannot_change_id(self, seeded_store):
        bus = seeded_store.update_bus("bus-1", {"id": "other", "name": "Renamed"})
        assert bus.id == "bus-1"
        assert seeded_store.get_bus("other") is None

    def test_snapshots_are_copies(self, store):
        record = {"id": "b", "name": "first"}
        store.create_bus(record)
        record["name"] = "mutated"
        assert store.get_bus("b").name == "first"


# ============================================================
# STOPS
# ============================================================

class TestStops:

    def test_round_trip(self, seeded_store, three_stops):
        assert seeded_store.get_stops("bus-1") == three_stops

    def test_out_of_range_offsets_dropped(self, seeded_store):
        stops = seeded_store.set_stops("bus-1", [
            {"name": "ok", "position": [16.3, 80.5], "plannedOffsetMins": 30},
            {"name": "infinite", "position": [16.4, 80.5], "plannedOffsetMins": float("inf")},
            {"name": "huge", "position": [16.5, 80.5], "plannedOffsetMins": 10**12},
        ])
        assert [s.name for s in stops] == ["ok"]
        assert [s.name for s in seeded_store.get_stops("bus-1")] == ["ok"]

    def test_normalizes_legacy_shapes(self):
        stops = normalize_stops({
            "a": {"name": "nested", "position": {"lat": 16.1, "lng": 80.1}, "plannedOffsetMins": 5},
            "b": {"name": "top-level", "latitude": 16.2, "longitude": 80.2},
            "c": {"name": "indexed", "position": {"0": 16.3, "1": 80.3}},
            "d": {"name": "no position"},
            "e": "garbage",
            "f": {"name": "bad offset", "position": [16.4, 80.4], "plannedOffsetMins": -3},
        })
        assert [s.name for s in stops] == ["nested", "top-level", "indexed"]
        assert stops[1].position == (16.2, 80.2)
        assert stops[0].planned_offset_mins == 5

    def test_non_collection_is_empty(self):
        assert normalize_stops(None) == []
        assert normalize_stops("stops") == []


# ============================================================
# SUBSCRIPTIONS
# ============================================================

class TestSubscriptions:

    def test_bus_subscription_fires_now_and_on_change(self, seeded_store):
        seen = []
        unsubscribe = seeded_store.subscribe_bus("bus-1", seen.append)

        seeded_store.update_bus("bus-1", {"name": "Route 1A"})
        unsubscribe()
        seeded_store.update_bus("bus-1", {"name": "Route 1B"})

        assert [b.name for b in seen] == ["Route 1", "Route 1A"]

    def test_unknown_bus_subscription_waits_for_create(self, store):
        seen = []
        store.subscribe_bus("later", seen.append)
        assert seen == []
        store.create_bus({"id": "later"})
        assert [b.id for b in seen] == ["later"]

    def test_list_subscription(self, store):
        snapshots = []
        store.subscribe_buses(snapshots.append)
        store.create_bus({"id": "a"})
        store.create_bus({"id": "b"})
        assert [[b.id for b in snap] for snap in snapshots] == [[], ["a"], ["a", "b"]]

    def test_stops_subscription(self, seeded_store, three_stops):
        seen = []
        seeded_store.subscribe_stops("bus-1", seen.append)
        seeded_store.set_stops("bus-1", [three_stops[0]])
        assert [len(s) for s in seen] == [3, 1]

    def test_failing_subscriber_does_not_block_others(self, seeded_store):
        seen = []

        def broken(_bus):
            raise RuntimeError("render failed")

        seeded_store.subscribe_bus("bus-1", broken)
        seeded_store.subscribe_bus("bus-1", seen.append)
        seeded_store.update_bus("bus-1", {"name": "still delivered"})

        assert seen[-1].name == "still delivered"

    def test_stores_are_independent(self):
        first, second = InMemoryBusStore(), InMemoryBusStore()
        first.create_bus({"id": "a"})
        assert second.get_bus("a") is None
