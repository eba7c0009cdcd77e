from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Optional
from urllib.parse import quote_plus

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    Integer,
    MetaData,
    String,
    Table,
    Time,
    create_engine,
    delete,
    insert,
    select,
    text,
    update,
)
from sqlalchemy.engine import URL, Engine
from sqlalchemy.exc import SQLAlchemyError

from ..common.datetime_utils import normalize_date, normalize_time
from ..core.enums import StoreType
from ..core.exceptions import ConfigurationError
from ..database.connection import parse_connection_string
from ..devices.model import AttendanceEvent
from .model import Employee, StoreConfig, WorkRecord
from .repository import AttendanceStore

logger = logging.getLogger(__name__)

metadata = MetaData()

attendance_logs = Table(
    "attendance_logs",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", String(50), nullable=False, index=True),
    Column("event_time", DateTime, nullable=False, index=True),
    Column("is_valid", Boolean, nullable=False),
    Column("att_state", Integer, nullable=False),
    Column("att_state_desc", String(50)),
    Column("verify_method", Integer, nullable=False),
    Column("verify_method_desc", String(50)),
    Column("work_code", Integer, default=0),
    Column("device_ip", String(50)),
    Column("device_name", String(100)),
    Column("created_at", DateTime, default=datetime.now),
)

employees = Table(
    "Employee",
    metadata,
    Column("empId", String(255), primary_key=True),
    Column("empnickName", String(255), nullable=False, default=""),
    Column("empGivenName", String(255), nullable=False, default=""),
    Column("empFamilyName", String(255), nullable=False, default=""),
    Column("empStatus", Integer, nullable=False, default=1),
    Column("createdAt", DateTime, default=datetime.now),
    Column("updatedAt", DateTime, default=datetime.now),
)

work_records = Table(
    "WorkRecord",
    metadata,
    Column("workrcId", Integer, primary_key=True, autoincrement=True),
    Column("empid", String(255), nullable=False, index=True),
    Column("date", Date, nullable=False, index=True),
    Column("workStart", Time),
    Column("workEnd", Time),
    Column("worktime", Float),
    Column("createat", DateTime, default=datetime.now),
    Column("updatedAt", DateTime, default=datetime.now),
)

# store type -> (display name, SQLAlchemy dialect+driver, default port)
_ENGINES = {
    StoreType.POSTGRESQL: ("PostgreSQL", "postgresql+psycopg2", 5432),
    StoreType.SQLSERVER: ("SQL Server", "mssql+pyodbc", 1433),
    StoreType.ORACLE: ("Oracle", "oracle+oracledb", 1521),
}

_TRUNCATE_DIALECTS = {"postgresql", "mssql", "oracle"}


def build_url(store_type: StoreType, config: StoreConfig):
    """SQLAlchemy URL for a store config.

    A ``connection_string`` that already is a URL is used as-is; an ADO-style
    ``Key=Value;`` string overrides the individual fields. SQL Server also
    accepts a raw ODBC string (``Driver=...``).
    """

    if store_type not in _ENGINES:
        raise ConfigurationError(f"No SQLAlchemy engine for store type '{store_type.value}'")
    _, drivername, default_port = _ENGINES[store_type]

    conn_str = (config.connection_string or "").strip()
    if "://" in conn_str:
        return conn_str
    if store_type is StoreType.SQLSERVER and "driver=" in conn_str.lower():
        return f"{drivername}:///?odbc_connect={quote_plus(conn_str)}"

    values = {
        "host": config.host or "localhost",
        "port": config.port,
        "user": config.user,
        "password": config.password,
        "database": config.database,
    }
    values.update(parse_connection_string(conn_str))
    try:
        port = int(values.get("port") or default_port)
    except ValueError:
        port = default_port

    query = {}
    if store_type is StoreType.SQLSERVER:
        query["driver"] = "ODBC Driver 17 for SQL Server"
    if store_type is StoreType.ORACLE:
        # Oracle connects by service name, not database name.
        query["service_name"] = values.get("database") or "ORCL"
        return URL.create(
            drivername,
            username=values.get("user") or None,
            password=values.get("password") or None,
            host=values["host"],
            port=port,
            query=query,
        )
    return URL.create(
        drivername,
        username=values.get("user") or None,
        password=values.get("password") or None,
        host=values["host"],
        port=port,
        database=values.get("database") or None,
        query=query,
    )


class SQLAlchemyAttendanceStore(AttendanceStore):
    """Store backed by a pooled SQLAlchemy Core engine (PostgreSQL, SQL Server, Oracle)."""

    def __init__(self, name: str, engine: Engine):
        self.name = name
        self._engine = engine

    @classmethod
    def from_config(cls, store_type: StoreType, config: StoreConfig) -> "SQLAlchemyAttendanceStore":
        display_name = _ENGINES[store_type][0] if store_type in _ENGINES else store_type.value
        engine = create_engine(build_url(store_type, config), pool_pre_ping=True)
        return cls(display_name, engine)

    @property
    def engine(self) -> Engine:
        return self._engine

    def test_connection(self) -> bool:
        try:
            with self._engine.connect() as conn:
                conn.execute(select(1))
        except SQLAlchemyError as e:
            logger.warning("[%s] Connection test failed: %s", self.name, e)
            return False
        return True

    def ensure_schema(self) -> None:
        metadata.create_all(self._engine)
        logger.info("[%s] Database initialized", self.name)

    def clear_all(self) -> None:
        dialect = self._engine.dialect.name
        with self._engine.begin() as conn:
            if dialect in _TRUNCATE_DIALECTS:
                for table in (work_records, attendance_logs):
                    name = self._engine.dialect.identifier_preparer.format_table(table)
                    conn.execute(text(f"TRUNCATE TABLE {name}"))
            else:
                conn.execute(delete(work_records))
                conn.execute(delete(attendance_logs))
        logger.info("[%s] Data cleared", self.name)

    def insert_raw_event(self, event: AttendanceEvent) -> None:
        with self._engine.begin() as conn:
            conn.execute(
                insert(attendance_logs).values(
                    user_id=event.employee_id,
                    event_time=event.event_time,
                    is_valid=event.valid,
                    att_state=event.attendance_state,
                    att_state_desc=event.att_state_description,
                    verify_method=event.verify_method,
                    verify_method_desc=event.verify_method_description,
                    work_code=event.work_code,
                    device_ip=event.device_address or None,
                    device_name=event.device_name or None,
                    created_at=datetime.now(),
                )
            )

    def get_employee(self, employee_id: str) -> Optional[Employee]:
        stmt = select(
            employees.c.empId,
            employees.c.empnickName,
            employees.c.empGivenName,
            employees.c.empFamilyName,
        ).where(employees.c.empId == employee_id)
        with self._engine.connect() as conn:
            r = conn.execute(stmt).mappings().first()
        if not r:
            return None
        return Employee(
            employee_id=str(r["empId"]),
            nick_name=r["empnickName"] or "",
            given_name=r["empGivenName"] or "",
            family_name=r["empFamilyName"] or "",
        )

    def get_today_work_record(self, employee_id: str, work_date: date) -> Optional[WorkRecord]:
        stmt = (
            select(work_records)
            .where(work_records.c.empid == employee_id, work_records.c.date == work_date)
            .order_by(work_records.c.workrcId)
            .limit(1)
        )
        with self._engine.connect() as conn:
            r = conn.execute(stmt).mappings().first()
        if not r:
            return None
        return WorkRecord(
            record_id=int(r["workrcId"]),
            employee_id=str(r["empid"]),
            work_date=normalize_date(r["date"]),
            work_start=normalize_time(r["workStart"]),
            work_end=normalize_time(r["workEnd"]),
            computed_hours=float(r["worktime"]) if r["worktime"] is not None else None,
        )

    def create_work_record(self, record: WorkRecord) -> int:
        with self._engine.begin() as conn:
            result = conn.execute(
                insert(work_records).values(
                    empid=record.employee_id,
                    date=record.work_date,
                    workStart=record.work_start,
                    workEnd=record.work_end,
                    worktime=record.computed_hours,
                    createat=datetime.now(),
                )
            )
            return int(result.inserted_primary_key[0])

    def update_work_record(self, record: WorkRecord) -> bool:
        with self._engine.begin() as conn:
            result = conn.execute(
                update(work_records)
                .where(work_records.c.workrcId == record.record_id)
                .values(workEnd=record.work_end, worktime=record.computed_hours, updatedAt=datetime.now())
            )
            return result.rowcount > 0

    def dispose(self) -> None:
        self._engine.dispose()
