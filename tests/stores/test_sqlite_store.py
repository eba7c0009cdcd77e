from __future__ import annotations

import sqlite3
from datetime import date, datetime, time

import pytest

from attendance_relay.stores.model import WorkRecord
from attendance_relay.stores.sqlite_store import SQLiteAttendanceStore

from tests.fakes import make_event


@pytest.fixture()
def store(tmp_path):
    s = SQLiteAttendanceStore(str(tmp_path / "data" / "relay.db"))
    assert s.test_connection()
    s.ensure_schema()
    return s


def _insert_employee(store, emp_id, nick=""):
    with sqlite3.connect(store.path) as conn:
        conn.execute("INSERT INTO Employee (empId, empnickName) VALUES (?, ?)", (emp_id, nick))


def test_ensure_schema_is_idempotent(store):
    store.ensure_schema()


def test_insert_raw_event_persists_descriptions(store):
    store.insert_raw_event(make_event("42", datetime(2026, 3, 2, 8, 7, 30), valid=False))

    with sqlite3.connect(store.path) as conn:
        row = conn.execute(
            "SELECT user_id, event_time, is_valid, att_state_desc, verify_method_desc, device_name FROM attendance_logs"
        ).fetchone()
    assert row == ("42", "2026-03-02 08:07:30", 0, "Check-In", "Fingerprint", "Gate")


def test_get_employee(store):
    _insert_employee(store, "7", "Linh")

    emp = store.get_employee("7")
    assert emp.nick_name == "Linh"
    assert emp.display_name == "Linh"
    assert store.get_employee("8") is None


def test_work_record_create_read_update(store):
    rec_id = store.create_work_record(
        WorkRecord(
            employee_id="7",
            work_date=date(2026, 3, 2),
            work_start=time(8, 0),
            work_end=time(17, 0),
            computed_hours=9.0,
        )
    )

    rec = store.get_today_work_record("7", date(2026, 3, 2))
    assert rec.record_id == rec_id
    assert rec.work_start == time(8, 0)
    assert rec.work_end == time(17, 0)
    assert rec.computed_hours == 9.0
    assert store.get_today_work_record("7", date(2026, 3, 3)) is None

    updated = WorkRecord(
        employee_id="7",
        work_date=date(2026, 3, 2),
        work_start=time(8, 0),
        work_end=time(14, 45),
        computed_hours=6.75,
        record_id=rec_id,
    )
    assert store.update_work_record(updated) is True
    assert store.get_today_work_record("7", date(2026, 3, 2)).work_end == time(14, 45)


def test_clear_all_resets_tables_and_ids(store):
    store.insert_raw_event(make_event("1", datetime(2026, 3, 2, 8, 0)))
    store.create_work_record(WorkRecord("1", date(2026, 3, 2), time(8, 0), time(17, 0), 9.0))

    store.clear_all()

    with sqlite3.connect(store.path) as conn:
        assert conn.execute("SELECT COUNT(*) FROM attendance_logs").fetchone()[0] == 0
        assert conn.execute("SELECT COUNT(*) FROM WorkRecord").fetchone()[0] == 0
    assert store.create_work_record(WorkRecord("1", date(2026, 3, 2), time(8, 0), time(17, 0), 9.0)) == 1


def test_unreachable_path_fails_connection_test(tmp_path):
    blocker = tmp_path / "file"
    blocker.write_text("x")
    s = SQLiteAttendanceStore(str(blocker / "nested" / "relay.db"))

    assert s.test_connection() is False
