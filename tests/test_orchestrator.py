from __future__ import annotations

import logging
import threading
from datetime import date, datetime, time

import pytest

from attendance_relay.core.exceptions import DeviceConnectionError, StoreConnectivityError
from attendance_relay.devices.fleet import DeviceFleet
from attendance_relay.devices.model import DeviceEndpoint, RawLog
from attendance_relay.orchestrator import AttendanceOrchestrator
from attendance_relay.stores.fanout import StoreFanout
from attendance_relay.workrecords.service import WorkRecordEngine

from tests.fakes import FailingStore, FakeDriver, InMemoryStore, make_event

DAY = date(2026, 3, 2)


def _build(drivers, stores, endpoints=None, event_workers=2, **kwargs):
    fleet = DeviceFleet(lambda: drivers.pop(0) if drivers else None, sleep=lambda s: None)
    fanout = StoreFanout()
    for s in stores:
        fanout.add_store(s)
    if endpoints is None:
        endpoints = [DeviceEndpoint(name=f"D{i}", address=f"10.0.0.{i}") for i in range(1, len(drivers) + 1)]
    orch = AttendanceOrchestrator(
        fleet,
        fanout,
        WorkRecordEngine(),
        endpoints=endpoints,
        watchdog_interval=0.01,
        event_workers=event_workers,
        sleep=lambda s: None,
        **kwargs,
    )
    return orch


def _store(name="A"):
    s = InMemoryStore(name)
    s.add_employee("1")
    s.add_employee("2")
    return s


def test_start_without_devices_enters_idle_mode():
    orch = _build([], [_store()], endpoints=[])

    assert orch.start() is False
    assert orch.is_idle
    orch.shutdown()


def test_start_connects_devices():
    orch = _build([FakeDriver(), FakeDriver(connect_ok=False)], [_store()])

    assert orch.start() is True
    assert orch.fleet.connected_count == 1
    orch.shutdown()


def test_device_event_is_replicated_and_derives_work_record():
    a, b = _store("A"), _store("B")
    driver = FakeDriver()
    orch = _build([driver], [a, b])
    orch.start()

    driver.emit_attendance("1", datetime.combine(DAY, time(8, 7)))
    driver.emit_attendance("1", datetime.combine(DAY, time(14, 47)), verify=2)
    orch.shutdown()

    for store in (a, b):
        assert [e.event_time.time() for e in store.events] == [time(8, 7), time(14, 47)]
        assert len(store.records) == 1
        rec = store.record_for("1", DAY)
        assert rec.work_start == time(8, 0)
        assert rec.work_end == time(14, 45)
        assert rec.computed_hours == pytest.approx(6.75)


class _SlowLookupStore(InMemoryStore):
    """Widens the read-then-create window and tracks overlapping lookups per employee."""

    def __init__(self, name="Slow"):
        super().__init__(name)
        self.add_employee("1")
        self.add_employee("2")
        self.overlap = {}
        self._active = {}
        self._count_lock = threading.Lock()

    def get_today_work_record(self, employee_id, work_date):
        with self._count_lock:
            self._active[employee_id] = self._active.get(employee_id, 0) + 1
            self.overlap[employee_id] = max(self.overlap.get(employee_id, 0), self._active[employee_id])
        try:
            threading.Event().wait(0.05)
            return super().get_today_work_record(employee_id, work_date)
        finally:
            with self._count_lock:
                self._active[employee_id] -= 1


def test_scans_of_one_employee_never_overlap():
    store = _SlowLookupStore()
    driver = FakeDriver()
    orch = _build([driver], [store], event_workers=4)
    orch.start()

    for minute in (0, 1, 2, 3):
        driver.emit_attendance("1", datetime.combine(DAY, time(8, minute)))
    driver.emit_attendance("1", datetime.combine(DAY, time(16, 40)))
    orch.shutdown()

    assert store.overlap["1"] == 1
    assert len(store.records) == 1
    rec = store.record_for("1", DAY)
    assert rec.work_start == time(8, 0)
    assert rec.work_end == time(16, 30)
    assert [e.event_time.time() for e in store.events][-1] == time(16, 40)


def test_different_employees_are_processed_in_parallel():
    gate = threading.Barrier(2, timeout=5)

    class Rendezvous(InMemoryStore):
        def get_today_work_record(self, employee_id, work_date):
            gate.wait()
            return super().get_today_work_record(employee_id, work_date)

    store = Rendezvous("R")
    store.add_employee("1")
    store.add_employee("2")
    driver = FakeDriver()
    orch = _build([driver], [store])
    orch.start()

    driver.emit_attendance("1", datetime.combine(DAY, time(8, 0)))
    driver.emit_attendance("2", datetime.combine(DAY, time(8, 30)))
    orch.shutdown()

    assert not gate.broken
    assert store.record_for("1", DAY).work_start == time(8, 0)
    assert store.record_for("2", DAY).work_start == time(8, 30)


def test_submit_event_future_resolves_to_outcome():
    store = _store()
    orch = _build([], [store])

    future = orch.submit_event(make_event("1", datetime.combine(DAY, time(9, 0))))
    outcome = future.result(timeout=5)
    orch.shutdown()

    assert outcome.insert.outcomes == {"A": True}
    assert outcome.work_record.all_ok


def test_process_event_isolates_failing_store():
    good, bad = _store("Good"), FailingStore("Bad")
    orch = _build([], [good, bad])

    outcome = orch.process_event(make_event("1", datetime.combine(DAY, time(8, 0))))

    assert outcome.insert.outcomes == {"Good": True, "Bad": False}
    assert outcome.work_record.outcomes == {"Good": True, "Bad": False}
    assert good.record_for("1", DAY).work_start == time(8, 0)
    orch.shutdown()


def test_callback_returns_before_stores_finish():
    release = threading.Event()

    class Slow(InMemoryStore):
        def insert_raw_event(self, event):
            release.wait(5)
            super().insert_raw_event(event)

    slow = Slow("Slow")
    driver = FakeDriver()
    orch = _build([driver], [slow])
    orch.start()

    driver.emit_attendance("1", datetime.combine(DAY, time(8, 0)))
    assert slow.events == []

    release.set()
    orch.shutdown()
    assert len(slow.events) == 1


def test_events_after_shutdown_are_dropped():
    store = _store()
    orch = _build([], [store])
    orch.shutdown()

    assert orch.submit_event(make_event("1", datetime.combine(DAY, time(8, 0)))) is None


def test_resync_replays_backlogs_in_global_time_order():
    d1 = FakeDriver(
        backlog=[
            RawLog(employee_id="1", event_time=datetime.combine(DAY, time(16, 31))),
            RawLog(employee_id="2", event_time=datetime.combine(DAY, time(8, 20))),
        ]
    )
    d2 = FakeDriver(
        backlog=[
            RawLog(employee_id="1", event_time=datetime.combine(DAY, time(7, 58))),
            RawLog(employee_id="1", event_time=datetime.combine(DAY, time(12, 5))),
        ]
    )
    store = _store()
    store.insert_raw_event(make_event("stale", datetime(2026, 1, 1, 8, 0)))
    orch = _build([d1, d2], [store])
    orch.start()

    report = orch.resync()

    assert report.records_read == 4
    assert report.records_replayed == 4
    assert report.devices_read == 2
    assert store.cleared == 1
    assert [e.event_time.time() for e in store.events] == [time(7, 58), time(8, 20), time(12, 5), time(16, 31)]
    assert all(e.valid for e in store.events)

    rec = store.record_for("1", DAY)
    assert rec.work_start == time(8, 0)
    assert rec.work_end == time(16, 30)
    assert rec.computed_hours == pytest.approx(8.5)
    assert store.record_for("2", DAY).work_start == time(8, 15)
    orch.shutdown()


def test_resync_skips_replay_into_store_that_was_not_cleared():
    class ClearRefused(InMemoryStore):
        def clear_all(self):
            raise RuntimeError("permission denied")

    good = _store("Good")
    refused = ClearRefused("Refused")
    refused.add_employee("1")
    refused.insert_raw_event(make_event("1", datetime.combine(DAY, time(7, 0))))
    driver = FakeDriver(backlog=[RawLog(employee_id="1", event_time=datetime.combine(DAY, time(8, 0)))])
    orch = _build([driver], [good, refused])
    orch.start()

    report = orch.resync()
    orch.shutdown()

    assert report.cleared.outcomes == {"Good": True, "Refused": False}
    assert [e.event_time.time() for e in good.events] == [time(8, 0)]
    assert [e.event_time.time() for e in refused.events] == [time(7, 0)]
    assert refused.records == {}


def test_resync_reports_nothing_replayed_when_no_store_was_cleared():
    driver = FakeDriver(backlog=[RawLog(employee_id="1", event_time=datetime.combine(DAY, time(8, 0)))])
    bad = FailingStore("Bad")
    orch = _build([driver], [bad])
    orch.start()

    report = orch.resync()
    orch.shutdown()

    assert report.records_read == 1
    assert report.records_replayed == 0
    assert report.insert_failures == 0


def test_resync_waits_for_in_flight_events():
    release = threading.Event()
    entered = threading.Event()

    class SlowInsert(InMemoryStore):
        def insert_raw_event(self, event):
            entered.set()
            release.wait(5)
            super().insert_raw_event(event)

    store = SlowInsert("Slow")
    store.add_employee("1")
    driver = FakeDriver(backlog=[RawLog(employee_id="1", event_time=datetime.combine(DAY, time(8, 0)))])
    orch = _build([driver], [store])
    orch.start()

    driver.emit_attendance("1", datetime.combine(DAY, time(7, 30)))
    assert entered.wait(5)
    worker = threading.Thread(target=orch.resync)
    worker.start()
    worker.join(0.1)
    assert store.cleared == 0

    release.set()
    worker.join(5)
    orch.shutdown()

    assert not worker.is_alive()
    assert store.cleared == 1
    assert [e.event_time.time() for e in store.events] == [time(8, 0)]


def test_live_events_during_resync_are_delivered_after_replay_once():
    backlog_time = datetime.combine(DAY, time(8, 0))
    driver = FakeDriver(backlog=[RawLog(employee_id="1", event_time=backlog_time)])

    class EmitsWhileClearing(InMemoryStore):
        def clear_all(self):
            super().clear_all()
            # the terminal pushes a scan it also keeps in its log, then a new one
            driver.emit_attendance("1", backlog_time)
            driver.emit_attendance("1", datetime.combine(DAY, time(12, 10)))

    store = EmitsWhileClearing("Live")
    store.add_employee("1")
    orch = _build([driver], [store])
    orch.start()

    report = orch.resync()
    orch.shutdown()

    assert report.records_replayed == 1
    assert [e.event_time.time() for e in store.events] == [time(8, 0), time(12, 10)]
    rec = store.record_for("1", DAY)
    assert rec.work_start == time(8, 0)
    assert rec.work_end == time(12, 0)
    assert len(store.records) == 1


def test_resync_requires_store_and_connected_device():
    no_store = _build([FakeDriver()], [])
    no_store.start()
    with pytest.raises(StoreConnectivityError):
        no_store.resync()
    no_store.shutdown()

    no_device = _build([FakeDriver(connect_ok=False)], [_store()])
    no_device.start()
    with pytest.raises(DeviceConnectionError):
        no_device.resync()
    no_device.shutdown()


def test_run_forever_ticks_watchdog_until_stopped():
    driver = FakeDriver()
    orch = _build([driver, FakeDriver()], [_store()], endpoints=[DeviceEndpoint(name="D1", address="10.0.0.1")])
    orch.start()
    driver.ping_ok = False

    runner = threading.Thread(target=orch.run_forever)
    runner.start()
    deadline = threading.Event()
    for _ in range(200):
        if driver.disconnect_calls:
            break
        deadline.wait(0.01)
    orch.stop()
    runner.join(5)

    assert not runner.is_alive()
    assert driver.disconnect_calls >= 1
    orch.shutdown()


def test_watchdog_errors_are_not_fatal():
    orch = _build([], [_store()])

    def explode():
        raise RuntimeError("boom")

    orch.fleet.maintain_connections = explode
    assert orch.watchdog_tick() == []
    orch.shutdown()


def test_status_snapshot():
    driver = FakeDriver()
    orch = _build([driver], [_store("A")])
    orch.start()
    driver.emit_attendance("1", datetime.combine(DAY, time(9, 0)))

    status = orch.status()
    orch.shutdown()

    assert status["devices"] == {"configured": 1, "connected": 1}
    assert status["stores"]["names"] == ["A"]
    assert status["events_received"] == 1
    assert status["last_event_at"] == "2026-03-02T09:00:00"


def test_failed_verify_and_card_reads_are_logged_as_warnings(caplog):
    driver = FakeDriver()
    orch = _build([driver], [_store()])
    orch.start()

    with caplog.at_level(logging.INFO, logger="attendance_relay"):
        driver.handlers.on_verify(-1)
        driver.handlers.on_card(0)
        driver.handlers.on_card(123456)
    orch.shutdown()

    warnings = [r.getMessage() for r in caplog.records if r.levelno == logging.WARNING]
    assert "[D1] Verification failed" in warnings
    assert "[D1] Card read failed" in warnings
    assert any("Card swiped: 123456" in r.getMessage() for r in caplog.records)
