from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional, Protocol, Sequence

from .model import DeviceInfo, RawLog

AttendanceHandler = Callable[[str, bool, int, int, datetime, int], None]


@dataclass(frozen=True)
class DriverHandlers:
    """Callbacks a driver invokes from its own thread.

    ``on_attendance`` receives (employee_id, valid_flag, att_state,
    verify_method, timestamp, work_code).
    """

    on_attendance: Optional[AttendanceHandler] = None
    on_disconnected: Optional[Callable[[], None]] = None
    on_finger_placed: Optional[Callable[[], None]] = None
    on_verify: Optional[Callable[[int], None]] = None
    on_card: Optional[Callable[[int], None]] = None
    on_new_user: Optional[Callable[[int], None]] = None


class TerminalDriver(Protocol):
    """Narrow view of one physical terminal used by the supervisor."""

    def connect(self, address: str, port: int) -> bool:
        raise NotImplementedError

    def disconnect(self) -> None:
        raise NotImplementedError

    def ping(self) -> bool:
        raise NotImplementedError

    def serial_number(self) -> str:
        raise NotImplementedError

    def read_backlog(self) -> Sequence[RawLog]:
        """Best effort: return the records read so far instead of raising."""

        raise NotImplementedError

    def device_info(self) -> Optional[DeviceInfo]:
        raise NotImplementedError

    def subscribe(self, handlers: DriverHandlers) -> None:
        raise NotImplementedError


DriverFactory = Callable[[], Optional[TerminalDriver]]
