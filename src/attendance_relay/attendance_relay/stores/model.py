from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time
from typing import Dict, Optional


@dataclass(frozen=True)
class Employee:
    """Row of the external employee register (read-only here)."""

    employee_id: str
    nick_name: str = ""
    given_name: str = ""
    family_name: str = ""

    @property
    def display_name(self) -> str:
        full = " ".join(p for p in (self.given_name, self.family_name) if p)
        return full or self.nick_name or self.employee_id


@dataclass(frozen=True)
class WorkRecord:
    """Daily check-in/check-out summary for one employee in one store."""

    employee_id: str
    work_date: date
    work_start: Optional[time]
    work_end: Optional[time]
    computed_hours: Optional[float]
    record_id: Optional[int] = None


@dataclass(frozen=True)
class StoreConfig:
    type: str
    enabled: bool = False
    host: str = "localhost"
    port: str = ""
    database: str = ""
    user: str = ""
    password: str = ""
    connection_string: str = ""

    def connection_info(self) -> str:
        if self.host and self.port:
            return f"{self.host}:{self.port}/{self.database}"
        return self.database or self.connection_string


@dataclass
class StoreHandle:
    """Active store that passed its connectivity probe."""

    name: str
    store: object
    connection_info: str = ""
    connected_at: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True)
class FanoutResult:
    """Per-store outcome of one fan-out operation (store name -> success)."""

    label: str
    outcomes: Dict[str, bool]

    @property
    def succeeded(self) -> int:
        return sum(1 for ok in self.outcomes.values() if ok)

    @property
    def failed(self) -> int:
        return sum(1 for ok in self.outcomes.values() if not ok)

    @property
    def all_ok(self) -> bool:
        return self.failed == 0
