from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from ..core.constants import DEFAULT_DEVICE_PORT
from ..core.enums import ConnectionStatus, describe_att_state, describe_verify_method


@dataclass(frozen=True)
class DeviceEndpoint:
    """Configured terminal address, immutable after load."""

    name: str
    address: str
    port: int = DEFAULT_DEVICE_PORT
    enabled: bool = True

    @property
    def label(self) -> str:
        return f"{self.name} ({self.address}:{self.port})"


@dataclass(frozen=True)
class DeviceConnection:
    """Snapshot of one supervisor's runtime state."""

    status: ConnectionStatus = ConnectionStatus.DISCONNECTED
    serial_number: str = ""
    last_seen: Optional[datetime] = None
    last_error: Optional[str] = None

    @property
    def is_connected(self) -> bool:
        return self.status is ConnectionStatus.CONNECTED


@dataclass(frozen=True)
class RawLog:
    """Historical record buffered on the terminal."""

    employee_id: str
    event_time: datetime
    verify_method: int = 0
    attendance_state: int = 0
    work_code: int = 0
    device_name: str = ""
    device_address: str = ""


@dataclass(frozen=True)
class AttendanceEvent:
    """One attendance transaction, consumed once by the store fan-out."""

    employee_id: str
    event_time: datetime
    verify_method: int
    attendance_state: int
    work_code: int
    device_name: str
    device_address: str
    valid: bool = True

    @property
    def att_state_description(self) -> str:
        return describe_att_state(self.attendance_state)

    @property
    def verify_method_description(self) -> str:
        return describe_verify_method(self.verify_method)

    @classmethod
    def from_raw_log(cls, log: RawLog) -> "AttendanceEvent":
        # Terminals only buffer accepted transactions.
        return cls(
            employee_id=log.employee_id,
            event_time=log.event_time,
            verify_method=log.verify_method,
            attendance_state=log.attendance_state,
            work_code=log.work_code,
            device_name=log.device_name,
            device_address=log.device_address,
            valid=True,
        )


@dataclass(frozen=True)
class DeviceInfo:
    name: str
    address: str
    port: int
    serial_number: str = ""
    firmware_version: str = ""
    user_count: int = 0
    fingerprint_count: int = 0
    record_count: int = 0
