from __future__ import annotations

from datetime import date
from typing import Optional, Protocol

from ..devices.model import AttendanceEvent
from .model import Employee, WorkRecord


class AttendanceStore(Protocol):
    """One relational store receiving the event log and work records."""

    name: str

    def test_connection(self) -> bool:
        raise NotImplementedError

    def ensure_schema(self) -> None:
        raise NotImplementedError

    def clear_all(self) -> None:
        """Wipe the event log and work-record tables (maintenance only)."""

        raise NotImplementedError

    def insert_raw_event(self, event: AttendanceEvent) -> None:
        raise NotImplementedError

    def get_employee(self, employee_id: str) -> Optional[Employee]:
        raise NotImplementedError

    def get_today_work_record(self, employee_id: str, work_date: date) -> Optional[WorkRecord]:
        raise NotImplementedError

    def create_work_record(self, record: WorkRecord) -> int:
        raise NotImplementedError

    def update_work_record(self, record: WorkRecord) -> bool:
        raise NotImplementedError

    def dispose(self) -> None:
        raise NotImplementedError
