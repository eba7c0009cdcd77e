from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING

from ..core.enums import TransitionKind
from .model import AttendanceEvent

if TYPE_CHECKING:
    from .supervisor import DeviceSupervisor


@dataclass(frozen=True)
class FleetTransition:
    """Connection change observed by the watchdog."""

    kind: TransitionKind
    device_name: str
    device_address: str
    at: datetime
    detail: str = ""


class DeviceListener:
    """Receives every device callback tagged with the originating supervisor.

    The default implementation ignores everything; consumers override what
    they need.
    """

    def on_attendance(self, device: "DeviceSupervisor", event: AttendanceEvent) -> None:
        pass

    def on_finger_placed(self, device: "DeviceSupervisor") -> None:
        pass

    def on_verify(self, device: "DeviceSupervisor", user_id: int) -> None:
        pass

    def on_card(self, device: "DeviceSupervisor", card_number: int) -> None:
        pass

    def on_new_user(self, device: "DeviceSupervisor", user_id: int) -> None:
        pass

    def on_disconnected(self, device: "DeviceSupervisor") -> None:
        pass

    def on_transition(self, transition: FleetTransition) -> None:
        pass
