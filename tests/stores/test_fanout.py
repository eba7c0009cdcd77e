from __future__ import annotations

import threading
from datetime import datetime

from attendance_relay.stores.factory import AttendanceStoreFactory
from attendance_relay.core.enums import StoreType
from attendance_relay.stores.fanout import StoreFanout
from attendance_relay.stores.model import StoreConfig

from tests.fakes import FailingStore, InMemoryStore, make_event


def _factory(**stores):
    """Store factory returning prepared stores keyed by config.database."""

    def build(config):
        return stores[config.database]

    return AttendanceStoreFactory(builders={t: build for t in StoreType})


def test_initialize_keeps_only_reachable_enabled_stores():
    good = InMemoryStore("MySQL")
    down = InMemoryStore("PostgreSQL", reachable=False)
    fanout = StoreFanout(_factory(good=good, down=down, off=InMemoryStore("Off")))

    count = fanout.initialize(
        [
            StoreConfig(type="mysql", enabled=True, database="good"),
            StoreConfig(type="postgres", enabled=True, database="down"),
            StoreConfig(type="sqlite", enabled=False, database="off"),
        ]
    )

    assert count == 1
    assert [h.name for h in fanout.handles] == ["MySQL"]
    assert good.schema_ready
    assert down.disposed


def test_unsupported_type_is_skipped():
    fanout = StoreFanout(_factory(good=InMemoryStore()))

    count = fanout.initialize(
        [
            StoreConfig(type="mongodb", enabled=True, database="good"),
            StoreConfig(type="sqlite3", enabled=True, database="good"),
        ]
    )

    assert count == 1


def test_no_store_is_degraded_not_fatal():
    fanout = StoreFanout(_factory())

    assert fanout.initialize([]) == 0
    result = fanout.insert(make_event("1", datetime(2026, 3, 2, 8, 0)))
    assert result.outcomes == {}
    assert result.all_ok


def test_insert_reaches_every_store():
    a, b = InMemoryStore("A"), InMemoryStore("B")
    fanout = StoreFanout()
    fanout.add_store(a)
    fanout.add_store(b)
    event = make_event("1", datetime(2026, 3, 2, 8, 0))

    result = fanout.insert(event)

    assert result.outcomes == {"A": True, "B": True}
    assert a.events == [event]
    assert b.events == [event]
    fanout.dispose()


def test_failing_store_is_isolated():
    good, bad = InMemoryStore("Good"), FailingStore("Bad")
    fanout = StoreFanout()
    fanout.add_store(good)
    fanout.add_store(bad)

    result = fanout.insert(make_event("1", datetime(2026, 3, 2, 8, 0)))

    assert result.outcomes == {"Good": True, "Bad": False}
    assert result.succeeded == 1
    assert result.failed == 1
    assert len(good.events) == 1
    fanout.dispose()


def test_stores_are_written_in_parallel():
    barrier = threading.Barrier(2, timeout=5)

    class Rendezvous(InMemoryStore):
        def insert_raw_event(self, event):
            barrier.wait()
            super().insert_raw_event(event)

    fanout = StoreFanout(max_workers=2)
    fanout.add_store(Rendezvous("A"))
    fanout.add_store(Rendezvous("B"))

    result = fanout.insert(make_event("1", datetime(2026, 3, 2, 8, 0)))

    assert result.all_ok
    fanout.dispose()


def test_clear_all_reports_per_store():
    good, bad = InMemoryStore("Good"), FailingStore("Bad")
    fanout = StoreFanout()
    fanout.add_store(good)
    fanout.add_store(bad)

    result = fanout.clear_all()

    assert good.cleared == 1
    assert result.outcomes == {"Good": True, "Bad": False}
    fanout.dispose()


def test_apply_can_target_named_stores():
    a, b = InMemoryStore("A"), InMemoryStore("B")
    fanout = StoreFanout()
    fanout.add_store(a)
    fanout.add_store(b)
    event = make_event("1", datetime(2026, 3, 2, 8, 0))

    result = fanout.apply("insert", lambda store: store.insert_raw_event(event), names={"B"})

    assert result.outcomes == {"B": True}
    assert a.events == []
    assert b.events == [event]
    assert fanout.apply("insert", lambda store: None, names=()).outcomes == {}
    fanout.dispose()


def test_dispose_waits_for_inflight_writes_then_releases():
    started, release = threading.Event(), threading.Event()

    class Slow(InMemoryStore):
        def insert_raw_event(self, event):
            started.set()
            release.wait(5)
            super().insert_raw_event(event)

    store = Slow("Slow")
    fanout = StoreFanout()
    fanout.add_store(store)
    batch = fanout.submit("insert", lambda s: s.insert_raw_event(make_event("1", datetime(2026, 3, 2, 8, 0))))
    started.wait(5)

    closer = threading.Thread(target=fanout.dispose)
    closer.start()
    release.set()
    closer.join(5)

    assert batch.wait().all_ok
    assert len(store.events) == 1
    assert store.disposed
    assert fanout.active_count == 0
