from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .devices.driver import DriverFactory
from .devices.factory import TerminalDriverFactory
from .devices.fleet import DeviceFleet
from .orchestrator import AttendanceOrchestrator
from .settings import RelaySettings
from .stores.factory import AttendanceStoreFactory
from .stores.fanout import StoreFanout
from .workrecords.factory import WorkRecordStrategyFactory
from .workrecords.service import WorkRecordEngine


@dataclass(frozen=True)
class Container:
    settings: RelaySettings

    driver_factory: DriverFactory
    store_factory: AttendanceStoreFactory

    fleet: DeviceFleet
    fanout: StoreFanout
    work_record_engine: WorkRecordEngine
    orchestrator: AttendanceOrchestrator


def build_container(
    settings: RelaySettings,
    *,
    driver_factory: Optional[DriverFactory] = None,
    store_factory: Optional[AttendanceStoreFactory] = None,
) -> Container:
    if driver_factory is None:
        driver_factory = TerminalDriverFactory().for_name(
            settings.driver_name,
            password=settings.driver_password,
            timeout=settings.driver_timeout,
            force_udp=settings.driver_force_udp,
        )
    store_factory = store_factory or AttendanceStoreFactory()

    fleet = DeviceFleet(driver_factory, reconnect_pause=settings.reconnect_pause)
    fanout = StoreFanout(store_factory)
    engine = WorkRecordEngine(strategy_factory=WorkRecordStrategyFactory())
    orchestrator = AttendanceOrchestrator(
        fleet,
        fanout,
        engine,
        endpoints=settings.devices,
        store_configs=settings.enabled_stores,
        watchdog_interval=settings.watchdog_interval,
        event_workers=settings.event_workers,
    )

    return Container(
        settings=settings,
        driver_factory=driver_factory,
        store_factory=store_factory,
        fleet=fleet,
        fanout=fanout,
        work_record_engine=engine,
        orchestrator=orchestrator,
    )
