from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Optional

import mysql.connector

from ..common.datetime_utils import normalize_date, normalize_time
from ..database.connection import DatabaseConnection, DBConfig
from ..database.mysql_base import db_cursor, fetchone
from ..devices.model import AttendanceEvent
from .model import Employee, StoreConfig, WorkRecord
from .repository import AttendanceStore

logger = logging.getLogger(__name__)

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS attendance_logs (
        id INT AUTO_INCREMENT PRIMARY KEY,
        user_id VARCHAR(50) NOT NULL,
        event_time DATETIME NOT NULL,
        is_valid BOOLEAN NOT NULL,
        att_state INT NOT NULL,
        att_state_desc VARCHAR(50),
        verify_method INT NOT NULL,
        verify_method_desc VARCHAR(50),
        work_code INT DEFAULT 0,
        device_ip VARCHAR(50),
        device_name VARCHAR(100),
        created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
        INDEX idx_user_id (user_id),
        INDEX idx_event_time (event_time)
    ) ENGINE=InnoDB DEFAULT CHARSET=utf8mb4
    """,
    """
    CREATE TABLE IF NOT EXISTS Employee (
        empId VARCHAR(255) NOT NULL PRIMARY KEY,
        empnickName VARCHAR(255) NOT NULL DEFAULT '',
        empGivenName VARCHAR(255) NOT NULL DEFAULT '',
        empFamilyName VARCHAR(255) NOT NULL DEFAULT '',
        empStatus INT NOT NULL DEFAULT 1,
        createdAt DATETIME DEFAULT CURRENT_TIMESTAMP,
        updatedAt DATETIME DEFAULT CURRENT_TIMESTAMP
    ) ENGINE=InnoDB
    """,
    """
    CREATE TABLE IF NOT EXISTS WorkRecord (
        workrcId INT AUTO_INCREMENT PRIMARY KEY,
        empid VARCHAR(255) NOT NULL,
        date DATE NOT NULL,
        workStart TIME,
        workEnd TIME,
        worktime DOUBLE,
        createat DATETIME DEFAULT CURRENT_TIMESTAMP,
        updatedAt DATETIME DEFAULT CURRENT_TIMESTAMP,
        INDEX idx_wr_date (date),
        INDEX idx_wr_empid (empid)
    ) ENGINE=InnoDB
    """,
)


class MySQLAttendanceStore(AttendanceStore):
    name = "MySQL"

    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    @classmethod
    def from_config(cls, config: StoreConfig) -> "MySQLAttendanceStore":
        return cls(DatabaseConnection(DBConfig.from_store_config(config, default_port=3306)))

    def test_connection(self) -> bool:
        try:
            conn = self._conn_factory.connect()
        except mysql.connector.Error as e:
            logger.warning("[MySQL] Connection test failed: %s", e)
            return False
        conn.close()
        return True

    def ensure_schema(self) -> None:
        with db_cursor(self._conn_factory) as (_, cur):
            for statement in _SCHEMA:
                cur.execute(statement)
        logger.info("[MySQL] Schema ready")

    def clear_all(self) -> None:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute("TRUNCATE TABLE WorkRecord")
            cur.execute("TRUNCATE TABLE attendance_logs")
        logger.info("[MySQL] Data cleared")

    def insert_raw_event(self, event: AttendanceEvent) -> None:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                INSERT INTO attendance_logs
                    (user_id, event_time, is_valid, att_state, att_state_desc,
                     verify_method, verify_method_desc, work_code, device_ip, device_name)
                VALUES (%s,%s,%s,%s,%s,%s,%s,%s,%s,%s)
                """,
                (
                    event.employee_id,
                    event.event_time,
                    bool(event.valid),
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
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                "SELECT empId, empnickName, empGivenName, empFamilyName FROM Employee WHERE empId=%s",
                (employee_id,),
            )
            r = fetchone(cur)
            if not r:
                return None
            return Employee(
                employee_id=str(r["empId"]),
                nick_name=r.get("empnickName") or "",
                given_name=r.get("empGivenName") or "",
                family_name=r.get("empFamilyName") or "",
            )

    def get_today_work_record(self, employee_id: str, work_date: date) -> Optional[WorkRecord]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                SELECT workrcId, empid, date, workStart, workEnd, worktime
                FROM WorkRecord
                WHERE empid=%s AND date=%s
                ORDER BY workrcId
                LIMIT 1
                """,
                (employee_id, work_date),
            )
            r = fetchone(cur)
            if not r:
                return None
            return WorkRecord(
                record_id=int(r["workrcId"]),
                employee_id=str(r["empid"]),
                work_date=normalize_date(r["date"]),
                work_start=normalize_time(r.get("workStart")),
                work_end=normalize_time(r.get("workEnd")),
                computed_hours=float(r["worktime"]) if r.get("worktime") is not None else None,
            )

    def create_work_record(self, record: WorkRecord) -> int:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                INSERT INTO WorkRecord (empid, date, workStart, workEnd, worktime, createat)
                VALUES (%s,%s,%s,%s,%s,%s)
                """,
                (
                    record.employee_id,
                    record.work_date,
                    record.work_start,
                    record.work_end,
                    record.computed_hours,
                    datetime.now(),
                ),
            )
            return int(cur.lastrowid)

    def update_work_record(self, record: WorkRecord) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                UPDATE WorkRecord
                SET workEnd=%s, worktime=%s, updatedAt=%s
                WHERE workrcId=%s
                """,
                (record.work_end, record.computed_hours, datetime.now(), record.record_id),
            )
            return cur.rowcount > 0

    def dispose(self) -> None:
        # Connections are per operation; nothing to release.
        pass
