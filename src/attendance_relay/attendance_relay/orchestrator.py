from __future__ import annotations

import logging
import threading
import time
from collections import deque
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Collection, Deque, Dict, Iterable, List, Optional, Sequence, Set, Tuple

from .common.datetime_utils import format_datetime, now_local
from .common.logging_setup import ATTENDANCE_LOGGER_NAME, flush_logging
from .core.constants import DEFAULT_EVENT_WORKERS, DEFAULT_WATCHDOG_INTERVAL_SECONDS
from .core.exceptions import ConfigurationError, DeviceConnectionError, RelayError, StoreConnectivityError
from .devices.fleet import DeviceFleet
from .devices.listener import DeviceListener, FleetTransition
from .devices.model import AttendanceEvent, DeviceEndpoint
from .devices.supervisor import DeviceSupervisor
from .stores.fanout import StoreFanout
from .stores.model import FanoutResult, StoreConfig
from .workrecords.service import WorkRecordEngine

logger = logging.getLogger(__name__)
attendance_logger = logging.getLogger(ATTENDANCE_LOGGER_NAME)


@dataclass(frozen=True)
class EventOutcome:
    event: AttendanceEvent
    insert: FanoutResult
    work_record: FanoutResult


@dataclass(frozen=True)
class ResyncReport:
    started_at: datetime
    finished_at: datetime
    devices_read: int
    records_read: int
    records_replayed: int
    cleared: FanoutResult
    insert_failures: int = 0

    def as_dict(self) -> dict:
        return {
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat(),
            "devices_read": self.devices_read,
            "records_read": self.records_read,
            "records_replayed": self.records_replayed,
            "insert_failures": self.insert_failures,
            "cleared": self.cleared.outcomes,
        }


class AttendanceOrchestrator(DeviceListener):
    """Wires device events to the store fan-out and the work-record engine.

    Driver callbacks only enqueue work on the event pool; each event then runs
    the raw insert and the work-record update concurrently across all stores.
    Events of one employee are processed one at a time in arrival order, so
    the first-scan decision always sees the record left by the previous scan.
    While a resync runs, live events are held and dispatched afterwards.
    """

    def __init__(
        self,
        fleet: DeviceFleet,
        fanout: StoreFanout,
        engine: WorkRecordEngine,
        *,
        endpoints: Sequence[DeviceEndpoint] = (),
        store_configs: Sequence[StoreConfig] = (),
        watchdog_interval: float = DEFAULT_WATCHDOG_INTERVAL_SECONDS,
        event_workers: int = DEFAULT_EVENT_WORKERS,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._fleet = fleet
        self._fanout = fanout
        self._engine = engine
        self._endpoints = list(endpoints)
        self._store_configs = list(store_configs)
        self._watchdog_interval = float(watchdog_interval)
        self._sleep = sleep

        self._event_pool = ThreadPoolExecutor(max_workers=event_workers, thread_name_prefix="attendance-event")
        self._stop = threading.Event()
        self._lock = threading.Lock()
        self._drained = threading.Condition(self._lock)
        # employee id -> events waiting behind the one being processed
        self._queues: Dict[str, Deque[Tuple[AttendanceEvent, Future]]] = {}
        self._held: List[Tuple[AttendanceEvent, Future]] = []
        self._resyncing = False
        self._resync_lock = threading.Lock()
        self._accepting = True
        self._closed = False
        self._idle = False
        self._started_at: Optional[datetime] = None
        self._events_received = 0
        self._last_event_at: Optional[datetime] = None

        self._fleet.set_listener(self)

    @property
    def fleet(self) -> DeviceFleet:
        return self._fleet

    @property
    def fanout(self) -> StoreFanout:
        return self._fanout

    @property
    def is_idle(self) -> bool:
        return self._idle

    @property
    def stopping(self) -> bool:
        return self._stop.is_set()

    def start(self) -> bool:
        """Initialise stores and connect devices; False means idle mode."""

        self._started_at = now_local()
        self._fanout.initialize(self._store_configs)

        if not self._endpoints:
            logger.error(
                "%s", ConfigurationError("No devices configured (set DEVICE_1_IP or ZKTECO_IP); running idle")
            )
            self._idle = True
            return False

        logger.info("Connecting to %d device(s)...", len(self._endpoints))
        connected = self._fleet.connect_all(self._endpoints)
        logger.info("Connected devices: %d/%d", connected, len(self._endpoints))
        for info in self._fleet.device_infos():
            logger.info(
                "  %s (%s:%s) S/N=%s FW=%s users=%d fingerprints=%d records=%d",
                info.name, info.address, info.port, info.serial_number or "-", info.firmware_version or "-",
                info.user_count, info.fingerprint_count, info.record_count,
            )
        return True

    # event path

    def process_event(self, event: AttendanceEvent, *, only: Optional[Collection[str]] = None) -> EventOutcome:
        """Insert the raw event and update work records on every store, concurrently.

        ``only`` restricts both writes to the named stores.
        """

        insert_batch = self._fanout.submit("insert", lambda store: store.insert_raw_event(event), names=only)
        record_batch = self._fanout.submit(
            "work-record", lambda store: self._engine.process(event, store), names=only
        )
        return EventOutcome(event=event, insert=insert_batch.wait(), work_record=record_batch.wait())

    def submit_event(self, event: AttendanceEvent) -> Optional[Future]:
        """Queue ``event`` behind earlier events of the same employee.

        The returned future resolves to the EventOutcome, or None when
        processing failed.
        """

        with self._lock:
            if not self._accepting:
                logger.warning("Shutting down; dropped event for user %s", event.employee_id)
                return None
            self._events_received += 1
            self._last_event_at = event.event_time
            result: Future = Future()
            if self._resyncing:
                self._held.append((event, result))
            else:
                self._dispatch_locked(event, result)
            return result

    def _dispatch_locked(self, event: AttendanceEvent, result: Future) -> None:
        queue = self._queues.get(event.employee_id)
        if queue is not None:
            queue.append((event, result))
            return
        self._queues[event.employee_id] = deque()
        self._event_pool.submit(self._drain, event.employee_id, event, result)

    def _drain(self, key: str, event: AttendanceEvent, result: Future) -> None:
        while True:
            if result.set_running_or_notify_cancel():
                result.set_result(self._run_event(event))
            with self._lock:
                queue = self._queues[key]
                if queue:
                    event, result = queue.popleft()
                    continue
                del self._queues[key]
                if not self._queues:
                    self._drained.notify_all()
                return

    def _run_event(self, event: AttendanceEvent) -> Optional[EventOutcome]:
        try:
            outcome = self.process_event(event)
        except Exception:
            logger.exception("Processing event for user %s failed", event.employee_id)
            return None
        if not outcome.insert.all_ok:
            logger.warning(
                "Event for user %s stored in %d/%d databases",
                event.employee_id, outcome.insert.succeeded, len(outcome.insert.outcomes),
            )
        return outcome

    # DeviceListener

    def on_attendance(self, device: DeviceSupervisor, event: AttendanceEvent) -> None:
        attendance_logger.info(
            "[%s] User: %s | Time: %s | Valid: %s | State: %s | Verify: %s | WorkCode: %s",
            device.name,
            event.employee_id,
            format_datetime(event.event_time),
            event.valid,
            event.att_state_description,
            event.verify_method_description,
            event.work_code,
        )
        self.submit_event(event)

    def on_finger_placed(self, device: DeviceSupervisor) -> None:
        logger.info("[%s] Finger placed on sensor", device.name)

    def on_verify(self, device: DeviceSupervisor, user_id: int) -> None:
        if user_id == -1:
            logger.warning("[%s] Verification failed", device.name)
        else:
            logger.info("[%s] User verified: %s", device.name, user_id)

    def on_card(self, device: DeviceSupervisor, card_number: int) -> None:
        if card_number == 0:
            logger.warning("[%s] Card read failed", device.name)
        else:
            logger.info("[%s] Card swiped: %s", device.name, card_number)

    def on_new_user(self, device: DeviceSupervisor, user_id: int) -> None:
        logger.info("[%s] New user enrolled: %s", device.name, user_id)

    def on_disconnected(self, device: DeviceSupervisor) -> None:
        logger.warning("[%s] Device disconnected (%s)", device.name, device.address)

    def on_transition(self, transition: FleetTransition) -> None:
        logger.debug("Transition %s for %s", transition.kind.value, transition.device_name)

    # lifecycle

    def watchdog_tick(self) -> List[FleetTransition]:
        try:
            return self._fleet.maintain_connections()
        except Exception:
            logger.exception("[Watchdog] Tick failed")
            return []

    def run_forever(self) -> None:
        """Run the watchdog every interval until stop() is called."""

        logger.info("Monitoring started (watchdog every %ss)", self._watchdog_interval)
        while not self._stop.wait(self._watchdog_interval):
            self.watchdog_tick()
        logger.info("Monitoring stopped")

    def stop(self) -> None:
        self._stop.set()

    def shutdown(self) -> None:
        """Drain in-flight events, then release devices and stores."""

        self.stop()
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._accepting = False

        logger.info("Shutting down...")
        self._event_pool.shutdown(wait=True)
        self._fleet.disconnect_all()
        self._fanout.dispose()
        logger.info("Shutdown complete")
        flush_logging()

    # maintenance

    def resync(self, *, delay: float = 0.0) -> ResyncReport:
        """Clear all stores and replay every connected device's backlog in time order.

        Live events wait until the replay is over; those already present in a
        backlog are not written twice. Stores whose clear failed get no replay.
        """

        if self._fanout.active_count == 0:
            raise StoreConnectivityError("No active database to resync")
        if self._fleet.connected_count == 0:
            raise DeviceConnectionError("No connected device to read the backlog from")
        if not self._resync_lock.acquire(blocking=False):
            raise RelayError("A resync is already running")

        replayed: Set[Tuple[str, datetime, str]] = set()
        try:
            with self._lock:
                self._resyncing = True
                while self._queues:
                    self._drained.wait()

            started = now_local()
            if delay > 0:
                logger.warning("Clearing all databases in %.0f seconds...", delay)
                self._sleep(delay)

            cleared = self._fanout.clear_all()
            targets = [name for name, ok in cleared.outcomes.items() if ok]
            for name, ok in cleared.outcomes.items():
                if not ok:
                    logger.error("[%s] Not cleared; skipped during replay", name)

            devices = [s for s in self._fleet.supervisors if s.is_connected]
            logs = []
            for supervisor in devices:
                device_logs = supervisor.read_backlog()
                logger.info("Read %d records from %s", len(device_logs), supervisor.endpoint.label)
                logs.extend(device_logs)

            events = sorted((AttendanceEvent.from_raw_log(log) for log in logs), key=lambda e: e.event_time)
            failures = 0
            if targets:
                failures = self._replay(events, targets)
                replayed.update(_event_key(e) for e in events)

            report = ResyncReport(
                started_at=started,
                finished_at=now_local(),
                devices_read=len(devices),
                records_read=len(logs),
                records_replayed=len(events) if targets else 0,
                cleared=cleared,
                insert_failures=failures,
            )
            logger.info(
                "Resync complete: %d records from %d device(s), %d insert failure(s)",
                report.records_replayed, report.devices_read, report.insert_failures,
            )
            return report
        finally:
            self._release_held(replayed)
            self._resync_lock.release()

    def _replay(self, events: Iterable[AttendanceEvent], targets: Collection[str]) -> int:
        failures = 0
        for i, event in enumerate(events, start=1):
            outcome = self.process_event(event, only=targets)
            failures += outcome.insert.failed
            if i % 100 == 0:
                logger.info("Replayed %d records...", i)
        return failures

    def _release_held(self, replayed: Set[Tuple[str, datetime, str]]) -> None:
        with self._lock:
            held, self._held = self._held, []
            self._resyncing = False
            for event, result in held:
                if _event_key(event) in replayed:
                    logger.info("Event for user %s already replayed; skipped", event.employee_id)
                    result.cancel()
                elif self._closed:
                    logger.warning("Shutting down; dropped event for user %s", event.employee_id)
                    result.cancel()
                else:
                    self._dispatch_locked(event, result)

    def status(self) -> dict:
        with self._lock:
            events = self._events_received
            last_event = self._last_event_at
        return {
            "started_at": self._started_at.isoformat() if self._started_at else None,
            "idle": self._idle,
            "stopping": self.stopping,
            "devices": {
                "configured": len(self._fleet.supervisors),
                "connected": self._fleet.connected_count,
            },
            "stores": {
                "active": self._fanout.active_count,
                "names": [h.name for h in self._fanout.handles],
            },
            "events_received": events,
            "last_event_at": last_event.isoformat() if last_event else None,
        }


def _event_key(event: AttendanceEvent) -> Tuple[str, datetime, str]:
    return event.employee_id, event.event_time, event.device_address
