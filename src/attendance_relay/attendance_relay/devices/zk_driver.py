"""ZKTeco terminal driver backed by the ``pyzk`` library.

Real-time transactions are read by ``live_capture`` on a daemon thread. pyzk
keeps the capture session on the same socket its commands use, so every
command (ping, backlog download, device info) first ends the capture session,
runs on the idle socket and then starts a new session. Transactions made
during that pause stay in the terminal log.
"""
from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Iterator, List, Optional, Sequence, Tuple

from zk import ZK
from zk.exception import ZKError

from ..core.constants import DEFAULT_DRIVER_TIMEOUT_SECONDS
from .driver import DriverHandlers
from .model import DeviceInfo, RawLog

logger = logging.getLogger(__name__)


class ZKTerminalDriver:
    def __init__(
        self,
        *,
        password: int = 0,
        timeout: int = DEFAULT_DRIVER_TIMEOUT_SECONDS,
        force_udp: bool = False,
        capture_timeout: int = 2,
    ):
        self._password = int(password)
        self._timeout = int(timeout)
        self._force_udp = bool(force_udp)
        self._capture_timeout = int(capture_timeout)

        self._conn: Optional[ZK] = None
        self._address = ""
        self._port = 0
        self._serial = ""
        self._handlers = DriverHandlers()
        self._io_lock = threading.RLock()
        self._capture: Optional[Tuple[threading.Thread, threading.Event]] = None

    def connect(self, address: str, port: int) -> bool:
        self.disconnect()
        zk = ZK(
            address,
            port=int(port),
            timeout=self._timeout,
            password=self._password,
            force_udp=self._force_udp,
            ommit_ping=False,
            verbose=False,
        )
        try:
            conn = zk.connect()
        except (ZKError, OSError) as e:
            logger.debug("pyzk connect to %s:%s failed: %s", address, port, e)
            return False
        if conn is None or not getattr(conn, "is_connect", False):
            return False

        # Read while the socket is still idle; the session is then reused by capture.
        try:
            serial = str(conn.get_serialnumber() or "")
        except (ZKError, OSError) as e:
            logger.debug("pyzk serial number from %s:%s unavailable: %s", address, port, e)
            serial = ""

        with self._io_lock:
            self._conn = conn
            self._address = address
            self._port = int(port)
            self._serial = serial
            self._start_capture(conn)
        return True

    def disconnect(self) -> None:
        with self._io_lock:
            conn = self._conn
            self._conn = None
            self._serial = ""
            if conn is None:
                return
            self._stop_capture(conn)
        try:
            conn.disconnect()
        except Exception as e:  # release must never fail
            logger.debug("pyzk disconnect from %s:%s raised: %s", self._address, self._port, e)

    def ping(self) -> bool:
        try:
            with self._command_io() as conn:
                if conn is None:
                    return False
                return conn.get_time() is not None
        except (ZKError, OSError) as e:
            logger.debug("pyzk ping %s:%s failed: %s", self._address, self._port, e)
            return False

    def serial_number(self) -> str:
        return self._serial

    def read_backlog(self) -> Sequence[RawLog]:
        logs: List[RawLog] = []
        try:
            with self._command_io() as conn:
                if conn is None:
                    return logs
                records = conn.get_attendance() or []
            for a in records:
                logs.append(
                    RawLog(
                        employee_id=str(getattr(a, "user_id", "") or getattr(a, "uid", "")),
                        event_time=a.timestamp,
                        verify_method=int(getattr(a, "status", 0) or 0),
                        attendance_state=int(getattr(a, "punch", 0) or 0),
                        device_address=self._address,
                    )
                )
        except (ZKError, OSError) as e:
            logger.warning("Backlog read from %s:%s stopped early: %s", self._address, self._port, e)
        return logs

    def device_info(self) -> Optional[DeviceInfo]:
        try:
            with self._command_io() as conn:
                if conn is None:
                    return None
                firmware = conn.get_firmware_version()
                conn.read_sizes()
                return DeviceInfo(
                    name="",
                    address=self._address,
                    port=self._port,
                    serial_number=self._serial,
                    firmware_version=str(firmware or ""),
                    user_count=int(conn.users or 0),
                    fingerprint_count=int(conn.fingers or 0),
                    record_count=int(conn.records or 0),
                )
        except (ZKError, OSError):
            return None

    def subscribe(self, handlers: DriverHandlers) -> None:
        self._handlers = handlers

    @contextmanager
    def _command_io(self) -> Iterator[Optional[ZK]]:
        """Hold the socket for one command with live capture paused."""

        with self._io_lock:
            conn = self._conn
            if conn is None:
                yield None
                return
            resume = self._stop_capture(conn)
            try:
                yield conn
            finally:
                # A dead socket makes the new session fail and report the disconnect.
                if resume and self._conn is conn:
                    self._start_capture(conn)

    def _start_capture(self, conn: ZK) -> None:
        stop = threading.Event()
        thread = threading.Thread(
            target=self._capture_loop,
            args=(conn, stop),
            name=f"zk-capture-{self._address}:{self._port}",
            daemon=True,
        )
        self._capture = (thread, stop)
        thread.start()

    def _stop_capture(self, conn: ZK) -> bool:
        capture, self._capture = self._capture, None
        if capture is None:
            return False
        thread, stop = capture
        stop.set()
        conn.end_live_capture = True
        if thread is not threading.current_thread():
            # live_capture notices the flag after its next receive timeout
            thread.join(timeout=self._capture_timeout + 1)
            if thread.is_alive():
                logger.warning("Live capture on %s:%s did not stop in time", self._address, self._port)
        return True

    def _capture_loop(self, conn: ZK, stop: threading.Event) -> None:
        try:
            for att in conn.live_capture(new_timeout=self._capture_timeout):
                if stop.is_set():
                    # pyzk resets the flag when the session starts; leave through its own cleanup
                    conn.end_live_capture = True
                    continue
                if att is None:
                    continue
                handler = self._handlers.on_attendance
                if handler is not None:
                    handler(
                        str(att.user_id),
                        True,
                        int(getattr(att, "punch", 0) or 0),
                        int(getattr(att, "status", 0) or 0),
                        att.timestamp,
                        0,
                    )
        except Exception as e:
            if not stop.is_set():
                logger.warning("Live capture on %s:%s ended: %s", self._address, self._port, e)
        finally:
            if not stop.is_set() and self._handlers.on_disconnected is not None:
                self._handlers.on_disconnected()
