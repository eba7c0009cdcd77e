from __future__ import annotations

import logging
import threading
import time
from dataclasses import replace
from datetime import datetime
from typing import Callable, List, Optional

from ..common.datetime_utils import now_local
from ..core.constants import DEFAULT_RECONNECT_PAUSE_SECONDS
from ..core.enums import ConnectionStatus
from ..core.exceptions import DeviceConnectionError
from .driver import DriverFactory, DriverHandlers, TerminalDriver
from .listener import DeviceListener
from .model import AttendanceEvent, DeviceConnection, DeviceEndpoint, DeviceInfo, RawLog

logger = logging.getLogger(__name__)


class DeviceSupervisor:
    """Owns one terminal's driver handle and its connection state machine.

    DISCONNECTED --connect ok--> CONNECTED
    CONNECTED --failed ping (watchdog) or driver disconnect callback--> DISCONNECTED
    DISCONNECTED --connect fails--> DISCONNECTED (error recorded, never raised)

    Connection operations are serialised by a re-entrant lock so a disconnect
    always completes before the next connect. Driver callbacks only touch the
    state lock, so they never wait on a slow connect.
    """

    def __init__(
        self,
        endpoint: DeviceEndpoint,
        driver_factory: DriverFactory,
        listener: Optional[DeviceListener] = None,
        *,
        reconnect_pause: float = DEFAULT_RECONNECT_PAUSE_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] = now_local,
    ):
        self._endpoint = endpoint
        self._driver_factory = driver_factory
        self._listener = listener or DeviceListener()
        self._reconnect_pause = float(reconnect_pause)
        self._sleep = sleep
        self._clock = clock

        self._op_lock = threading.RLock()
        self._state_lock = threading.Lock()
        self._driver: Optional[TerminalDriver] = None
        self._generation = 0
        self._status = ConnectionStatus.DISCONNECTED
        self._serial_number = ""
        self._last_seen: Optional[datetime] = None
        self._last_error: Optional[str] = None

    @property
    def endpoint(self) -> DeviceEndpoint:
        return self._endpoint

    @property
    def name(self) -> str:
        return self._endpoint.name

    @property
    def address(self) -> str:
        return self._endpoint.address

    @property
    def port(self) -> int:
        return self._endpoint.port

    @property
    def connection(self) -> DeviceConnection:
        with self._state_lock:
            return DeviceConnection(
                status=self._status,
                serial_number=self._serial_number,
                last_seen=self._last_seen,
                last_error=self._last_error,
            )

    @property
    def is_connected(self) -> bool:
        with self._state_lock:
            return self._status is ConnectionStatus.CONNECTED

    def set_listener(self, listener: DeviceListener) -> None:
        self._listener = listener

    def connect(self) -> bool:
        with self._op_lock:
            self._release()
            with self._state_lock:
                self._generation += 1
                generation = self._generation

            driver: Optional[TerminalDriver] = None
            try:
                driver = self._driver_factory()
                if driver is None:
                    raise DeviceConnectionError(f"No terminal driver available for {self._endpoint.label}")
                driver.subscribe(self._handlers_for(generation))
                if not driver.connect(self._endpoint.address, self._endpoint.port):
                    raise DeviceConnectionError(f"Handshake with {self._endpoint.label} failed")
                serial = driver.serial_number()
            except Exception as e:
                error = e if isinstance(e, DeviceConnectionError) else DeviceConnectionError(
                    f"Connecting to {self._endpoint.label} failed: {e}"
                )
                if driver is not None:
                    self._safe_disconnect(driver)
                with self._state_lock:
                    self._status = ConnectionStatus.DISCONNECTED
                    self._last_error = str(error)
                logger.warning("%s", error)
                return False

            self._driver = driver
            with self._state_lock:
                self._status = ConnectionStatus.CONNECTED
                self._serial_number = serial or ""
                self._last_seen = self._clock()
                self._last_error = None
            logger.info("Connected %s (S/N: %s)", self._endpoint.label, serial or "-")
            return True

    def disconnect(self) -> None:
        with self._op_lock:
            self._release()

    def ping(self) -> bool:
        with self._op_lock:
            driver = self._driver
            if driver is None or not self.is_connected:
                return False
            try:
                alive = bool(driver.ping())
            except Exception as e:
                logger.debug("Ping %s raised: %s", self._endpoint.label, e)
                alive = False
            if alive:
                with self._state_lock:
                    self._last_seen = self._clock()
            return alive

    def reconnect(self) -> bool:
        with self._op_lock:
            self.disconnect()
            self._sleep(self._reconnect_pause)
            return self.connect()

    def read_backlog(self) -> List[RawLog]:
        with self._op_lock:
            driver = self._driver
            if driver is None:
                return []
            try:
                logs = list(driver.read_backlog() or [])
            except Exception as e:
                logger.warning("Reading backlog from %s failed: %s", self._endpoint.label, e)
                return []
        return [
            replace(log, device_name=self._endpoint.name, device_address=self._endpoint.address)
            for log in logs
        ]

    def device_info(self) -> Optional[DeviceInfo]:
        with self._op_lock:
            driver = self._driver
            if driver is None:
                return None
            try:
                info = driver.device_info()
            except Exception as e:
                logger.debug("Device info for %s unavailable: %s", self._endpoint.label, e)
                return None
        if info is None:
            return None
        return replace(info, name=self._endpoint.name, address=self._endpoint.address, port=self._endpoint.port)

    def _release(self) -> None:
        driver = self._driver
        self._driver = None
        with self._state_lock:
            self._generation += 1
            self._status = ConnectionStatus.DISCONNECTED
        if driver is not None:
            self._safe_disconnect(driver)

    def _safe_disconnect(self, driver: TerminalDriver) -> None:
        try:
            driver.disconnect()
        except Exception as e:
            logger.debug("Releasing driver for %s raised: %s", self._endpoint.label, e)

    def _is_current(self, generation: int) -> bool:
        with self._state_lock:
            return generation == self._generation

    def _handlers_for(self, generation: int) -> DriverHandlers:
        def on_attendance(employee_id, valid_flag, att_state, verify_method, timestamp, work_code):
            if not self._is_current(generation):
                return
            event = AttendanceEvent(
                employee_id=str(employee_id),
                event_time=timestamp,
                verify_method=int(verify_method),
                attendance_state=int(att_state),
                work_code=int(work_code or 0),
                device_name=self._endpoint.name,
                device_address=self._endpoint.address,
                valid=bool(valid_flag),
            )
            self._notify(self._listener.on_attendance, self, event)

        def on_disconnected():
            with self._state_lock:
                if generation != self._generation:
                    return
                self._status = ConnectionStatus.DISCONNECTED
            self._notify(self._listener.on_disconnected, self)

        def on_finger_placed():
            if self._is_current(generation):
                self._notify(self._listener.on_finger_placed, self)

        def on_verify(user_id):
            if self._is_current(generation):
                self._notify(self._listener.on_verify, self, int(user_id))

        def on_card(card_number):
            if self._is_current(generation):
                self._notify(self._listener.on_card, self, int(card_number))

        def on_new_user(user_id):
            if self._is_current(generation):
                self._notify(self._listener.on_new_user, self, int(user_id))

        return DriverHandlers(
            on_attendance=on_attendance,
            on_disconnected=on_disconnected,
            on_finger_placed=on_finger_placed,
            on_verify=on_verify,
            on_card=on_card,
            on_new_user=on_new_user,
        )

    def _notify(self, callback, *args) -> None:
        try:
            callback(*args)
        except Exception:
            logger.exception("Device listener failed for %s", self._endpoint.label)

    def __repr__(self) -> str:
        return f"DeviceSupervisor({self._endpoint.label}, {self.connection.status.value})"
