from __future__ import annotations

import logging
import os
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Iterable, List, Mapping, Optional

from ..common.datetime_utils import now_local
from ..common.validators import env_bool, env_int
from ..core.constants import DEFAULT_DEVICE_PORT, DEFAULT_RECONNECT_PAUSE_SECONDS, LEGACY_DEVICE_NAME, MAX_DEVICES
from ..core.enums import TransitionKind
from .driver import DriverFactory
from .listener import DeviceListener, FleetTransition
from .model import AttendanceEvent, DeviceEndpoint, DeviceInfo, RawLog
from .supervisor import DeviceSupervisor

logger = logging.getLogger(__name__)


def load_device_configs(
    environ: Optional[Mapping[str, str]] = None,
    *,
    max_devices: int = MAX_DEVICES,
) -> List[DeviceEndpoint]:
    """Read ``DEVICE_<i>_*`` entries in order, falling back to ``ZKTECO_IP``.

    Entries without an address or explicitly disabled are skipped.
    """

    env = os.environ if environ is None else environ
    endpoints: List[DeviceEndpoint] = []

    for i in range(1, max_devices + 1):
        prefix = f"DEVICE_{i}_"
        address = (env.get(f"{prefix}IP") or "").strip()
        if not address:
            continue
        if not env_bool(env, f"{prefix}ENABLED", default=True):
            continue
        endpoints.append(
            DeviceEndpoint(
                name=(env.get(f"{prefix}NAME") or "").strip() or f"Device {i}",
                address=address,
                port=env_int(env, f"{prefix}PORT", DEFAULT_DEVICE_PORT),
                enabled=True,
            )
        )

    if not endpoints:
        address = (env.get("ZKTECO_IP") or "").strip()
        if address:
            endpoints.append(
                DeviceEndpoint(
                    name=LEGACY_DEVICE_NAME,
                    address=address,
                    port=env_int(env, "ZKTECO_PORT", DEFAULT_DEVICE_PORT),
                    enabled=True,
                )
            )

    return endpoints


class DeviceFleet(DeviceListener):
    """Set of device supervisors behind one subscription point.

    Every supervisor reports to the fleet, which re-emits each callback to the
    consumer listener tagged with the originating supervisor.
    """

    def __init__(
        self,
        driver_factory: DriverFactory,
        listener: Optional[DeviceListener] = None,
        *,
        reconnect_pause: float = DEFAULT_RECONNECT_PAUSE_SECONDS,
        sleep: Optional[Callable[[float], None]] = None,
    ):
        self._driver_factory = driver_factory
        self._listener = listener or DeviceListener()
        self._reconnect_pause = reconnect_pause
        self._sleep = sleep
        self._lock = threading.RLock()
        self._supervisors: List[DeviceSupervisor] = []

    @property
    def supervisors(self) -> List[DeviceSupervisor]:
        with self._lock:
            return list(self._supervisors)

    @property
    def connected_count(self) -> int:
        return sum(1 for s in self.supervisors if s.is_connected)

    def set_listener(self, listener: DeviceListener) -> None:
        self._listener = listener

    def add(self, endpoint: DeviceEndpoint) -> DeviceSupervisor:
        kwargs = {"reconnect_pause": self._reconnect_pause}
        if self._sleep is not None:
            kwargs["sleep"] = self._sleep
        supervisor = DeviceSupervisor(endpoint, self._driver_factory, self, **kwargs)
        with self._lock:
            self._supervisors.append(supervisor)
        return supervisor

    def connect_all(self, endpoints: Iterable[DeviceEndpoint]) -> int:
        """Connect every enabled endpoint in parallel; returns the connected count.

        Failed devices stay in the fleet and are retried by the watchdog.
        """

        added = [self.add(e) for e in endpoints if e.enabled]
        if not added:
            return 0

        with ThreadPoolExecutor(max_workers=len(added), thread_name_prefix="device-connect") as pool:
            results = list(pool.map(lambda s: s.connect(), added))

        for supervisor, ok in zip(added, results):
            if not ok:
                logger.warning(
                    "Failed to connect to %s, will retry from the watchdog", supervisor.endpoint.label
                )
        return sum(1 for ok in results if ok)

    def maintain_connections(self) -> List[FleetTransition]:
        """Watchdog tick: reconnect dropped devices, ping connected ones."""

        transitions: List[FleetTransition] = []
        for supervisor in self.supervisors:
            label = supervisor.endpoint.label
            if not supervisor.is_connected:
                logger.info("[Watchdog] Attempting to reconnect %s...", label)
                if supervisor.connect():
                    transitions.append(self._transition(TransitionKind.RECONNECTED, supervisor))
                else:
                    transitions.append(
                        self._transition(TransitionKind.FAILED, supervisor, supervisor.connection.last_error)
                    )
                continue

            if supervisor.ping():
                continue

            logger.warning("[Watchdog] Connection lost to %s. Reconnecting...", label)
            transitions.append(self._transition(TransitionKind.LOST, supervisor))
            if supervisor.reconnect():
                transitions.append(self._transition(TransitionKind.RECONNECTED, supervisor))
            else:
                transitions.append(
                    self._transition(TransitionKind.FAILED, supervisor, supervisor.connection.last_error)
                )

        for t in transitions:
            if t.kind is TransitionKind.RECONNECTED:
                logger.info("[Watchdog] Reconnected %s (%s)", t.device_name, t.device_address)
            elif t.kind is TransitionKind.FAILED:
                logger.warning("[Watchdog] Failed to reconnect %s (%s)", t.device_name, t.device_address)
            self._emit(self._listener.on_transition, t)
        return transitions

    def read_all_backlogs(self) -> List[RawLog]:
        logs: List[RawLog] = []
        for supervisor in self.supervisors:
            if supervisor.is_connected:
                logs.extend(supervisor.read_backlog())
        return logs

    def device_infos(self) -> List[DeviceInfo]:
        infos = []
        for supervisor in self.supervisors:
            if supervisor.is_connected:
                info = supervisor.device_info()
                if info is not None:
                    infos.append(info)
        return infos

    def disconnect_all(self) -> None:
        for supervisor in self.supervisors:
            supervisor.disconnect()

    def summary(self) -> List[dict]:
        rows = []
        for s in self.supervisors:
            conn = s.connection
            rows.append(
                {
                    "name": s.name,
                    "address": s.address,
                    "port": s.port,
                    "status": conn.status.value,
                    "serial_number": conn.serial_number,
                    "last_seen": conn.last_seen.isoformat() if conn.last_seen else None,
                    "last_error": conn.last_error,
                }
            )
        return rows

    # DeviceListener: re-emit supervisor callbacks to the consumer.

    def on_attendance(self, device: DeviceSupervisor, event: AttendanceEvent) -> None:
        self._listener.on_attendance(device, event)

    def on_finger_placed(self, device: DeviceSupervisor) -> None:
        self._listener.on_finger_placed(device)

    def on_verify(self, device: DeviceSupervisor, user_id: int) -> None:
        self._listener.on_verify(device, user_id)

    def on_card(self, device: DeviceSupervisor, card_number: int) -> None:
        self._listener.on_card(device, card_number)

    def on_new_user(self, device: DeviceSupervisor, user_id: int) -> None:
        self._listener.on_new_user(device, user_id)

    def on_disconnected(self, device: DeviceSupervisor) -> None:
        self._listener.on_disconnected(device)

    def _transition(self, kind: TransitionKind, supervisor: DeviceSupervisor, detail: Optional[str] = None) -> FleetTransition:
        return FleetTransition(
            kind=kind,
            device_name=supervisor.name,
            device_address=supervisor.address,
            at=now_local(),
            detail=detail or "",
        )

    def _emit(self, callback, *args) -> None:
        try:
            callback(*args)
        except Exception:
            logger.exception("Transition listener failed")
