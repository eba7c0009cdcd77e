from __future__ import annotations

import logging
import os
import sqlite3
from contextlib import contextmanager
from datetime import date, datetime
from typing import Optional

from ..common.datetime_utils import format_datetime, format_time, normalize_date, normalize_time
from ..core.constants import DATE_FORMAT
from ..devices.model import AttendanceEvent
from .model import Employee, StoreConfig, WorkRecord
from .repository import AttendanceStore

logger = logging.getLogger(__name__)

DEFAULT_SQLITE_FILE = "zkteco.db"

_SCHEMA = """
CREATE TABLE IF NOT EXISTS attendance_logs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT NOT NULL,
    event_time TEXT NOT NULL,
    is_valid INTEGER NOT NULL,
    att_state INTEGER NOT NULL,
    att_state_desc TEXT,
    verify_method INTEGER NOT NULL,
    verify_method_desc TEXT,
    work_code INTEGER DEFAULT 0,
    device_ip TEXT,
    device_name TEXT,
    created_at TEXT DEFAULT CURRENT_TIMESTAMP
);
CREATE INDEX IF NOT EXISTS idx_attendance_logs_user_id ON attendance_logs(user_id);
CREATE INDEX IF NOT EXISTS idx_attendance_logs_event_time ON attendance_logs(event_time);

CREATE TABLE IF NOT EXISTS Employee (
    empId TEXT PRIMARY KEY NOT NULL,
    empnickName TEXT NOT NULL DEFAULT '',
    empGivenName TEXT NOT NULL DEFAULT '',
    empFamilyName TEXT NOT NULL DEFAULT '',
    empStatus INTEGER NOT NULL DEFAULT 1,
    createdAt TEXT DEFAULT CURRENT_TIMESTAMP,
    updatedAt TEXT DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS WorkRecord (
    workrcId INTEGER PRIMARY KEY AUTOINCREMENT,
    empid TEXT NOT NULL,
    date TEXT NOT NULL,
    workStart TEXT,
    workEnd TEXT,
    worktime REAL,
    createat TEXT DEFAULT CURRENT_TIMESTAMP,
    updatedAt TEXT DEFAULT CURRENT_TIMESTAMP
);
CREATE INDEX IF NOT EXISTS idx_wr_date ON WorkRecord(date);
CREATE INDEX IF NOT EXISTS idx_wr_empid ON WorkRecord(empid);
"""


def resolve_sqlite_path(config: StoreConfig, data_dir: str = "data") -> str:
    """File path from ``Data Source=...`` or the database name (``.db`` appended)."""

    conn_str = (config.connection_string or "").strip()
    if conn_str:
        for chunk in conn_str.split(";"):
            key, _, value = chunk.partition("=")
            if key.strip().lower() in {"data source", "datasource", "filename"} and value.strip():
                return value.strip()
        if "=" not in conn_str:
            return conn_str

    db_file = config.database or DEFAULT_SQLITE_FILE
    if not db_file.endswith(".db"):
        db_file += ".db"
    if os.path.dirname(db_file):
        return db_file
    return os.path.join(data_dir, db_file)


class SQLiteAttendanceStore(AttendanceStore):
    name = "SQLite"

    def __init__(self, path: str, *, timeout: float = 5.0):
        self._path = path
        self._timeout = timeout

    @classmethod
    def from_config(cls, config: StoreConfig) -> "SQLiteAttendanceStore":
        return cls(resolve_sqlite_path(config))

    @property
    def path(self) -> str:
        return self._path

    @contextmanager
    def _get_conn(self):
        conn = sqlite3.connect(self._path, timeout=self._timeout)
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def test_connection(self) -> bool:
        try:
            directory = os.path.dirname(self._path)
            if directory:
                os.makedirs(directory, exist_ok=True)
            with self._get_conn() as conn:
                conn.execute("SELECT 1")
        except (sqlite3.Error, OSError) as e:
            logger.warning("[SQLite] Connection test failed: %s", e)
            return False
        return True

    def ensure_schema(self) -> None:
        with self._get_conn() as conn:
            conn.executescript(_SCHEMA)
            cols = [row[1] for row in conn.execute("PRAGMA table_info(attendance_logs)").fetchall()]
            # Backfill for databases created before device_name existed
            if "device_name" not in cols:
                conn.execute("ALTER TABLE attendance_logs ADD COLUMN device_name TEXT")
        logger.info("[SQLite] Database initialized: %s", self._path)

    def clear_all(self) -> None:
        with self._get_conn() as conn:
            conn.execute("DELETE FROM WorkRecord")
            conn.execute("DELETE FROM attendance_logs")
            conn.execute("DELETE FROM sqlite_sequence WHERE name IN ('WorkRecord', 'attendance_logs')")
        logger.info("[SQLite] Data cleared")

    def insert_raw_event(self, event: AttendanceEvent) -> None:
        with self._get_conn() as conn:
            conn.execute(
                """
                INSERT INTO attendance_logs
                    (user_id, event_time, is_valid, att_state, att_state_desc,
                     verify_method, verify_method_desc, work_code, device_ip, device_name)
                VALUES (?,?,?,?,?,?,?,?,?,?)
                """,
                (
                    event.employee_id,
                    format_datetime(event.event_time),
                    1 if event.valid else 0,
                    event.attendance_state,
                    event.att_state_description,
                    event.verify_method,
                    event.verify_method_description,
                    event.work_code,
                    event.device_address or None,
                    event.device_name or None,
                ),
            )

    def get_employee(self, employee_id: str) -> Optional[Employee]:
        with self._get_conn() as conn:
            r = conn.execute(
                "SELECT empId, empnickName, empGivenName, empFamilyName FROM Employee WHERE empId=?",
                (employee_id,),
            ).fetchone()
        if not r:
            return None
        return Employee(employee_id=str(r[0]), nick_name=r[1] or "", given_name=r[2] or "", family_name=r[3] or "")

    def get_today_work_record(self, employee_id: str, work_date: date) -> Optional[WorkRecord]:
        with self._get_conn() as conn:
            r = conn.execute(
                """
                SELECT workrcId, empid, date, workStart, workEnd, worktime
                FROM WorkRecord
                WHERE empid=? AND date=?
                ORDER BY workrcId
                LIMIT 1
                """,
                (employee_id, work_date.strftime(DATE_FORMAT)),
            ).fetchone()
        if not r:
            return None
        return WorkRecord(
            record_id=int(r[0]),
            employee_id=str(r[1]),
            work_date=normalize_date(r[2]),
            work_start=normalize_time(r[3]),
            work_end=normalize_time(r[4]),
            computed_hours=float(r[5]) if r[5] is not None else None,
        )

    def create_work_record(self, record: WorkRecord) -> int:
        with self._get_conn() as conn:
            cur = conn.execute(
                """
                INSERT INTO WorkRecord (empid, date, workStart, workEnd, worktime, createat)
                VALUES (?,?,?,?,?,?)
                """,
                (
                    record.employee_id,
                    record.work_date.strftime(DATE_FORMAT),
                    format_time(record.work_start),
                    format_time(record.work_end),
                    record.computed_hours,
                    format_datetime(datetime.now()),
                ),
            )
            return int(cur.lastrowid)

    def update_work_record(self, record: WorkRecord) -> bool:
        with self._get_conn() as conn:
            cur = conn.execute(
                "UPDATE WorkRecord SET workEnd=?, worktime=?, updatedAt=? WHERE workrcId=?",
                (
                    format_time(record.work_end),
                    record.computed_hours,
                    format_datetime(datetime.now()),
                    record.record_id,
                ),
            )
            return cur.rowcount > 0

    def dispose(self) -> None:
        pass
