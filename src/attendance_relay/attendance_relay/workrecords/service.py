from __future__ import annotations

import logging
from dataclasses import replace
from typing import Optional

from ..devices.model import AttendanceEvent
from ..stores.model import WorkRecord
from ..stores.repository import AttendanceStore
from .factory import WorkRecordStrategyFactory

logger = logging.getLogger(__name__)


class WorkRecordEngine:
    """Derives the per-employee daily work record from attendance scans.

    Stateless: every call reads the current record from the target store, so
    the same engine serves all stores concurrently.
    """

    def __init__(self, *, strategy_factory: WorkRecordStrategyFactory | None = None):
        self._factory = strategy_factory or WorkRecordStrategyFactory()

    def process(self, event: AttendanceEvent, store: AttendanceStore) -> Optional[WorkRecord]:
        """Apply one scan to ``store``; returns the written record or None when skipped.

        Store errors propagate so the fan-out can isolate them per store.
        """

        if not event.valid:
            return None

        employee = store.get_employee(event.employee_id)
        if employee is None:
            logger.debug("[%s] Employee %s not registered; work record skipped", store.name, event.employee_id)
            return None

        work_date = event.event_time.date()
        scan_time = event.event_time.time()
        existing = store.get_today_work_record(event.employee_id, work_date)

        strategy = self._factory.for_record(existing)
        decision = strategy.decide(scan_time=scan_time, existing=existing)

        if existing is None:
            record = WorkRecord(
                employee_id=event.employee_id,
                work_date=work_date,
                work_start=decision.work_start,
                work_end=decision.work_end,
                computed_hours=decision.computed_hours,
            )
            record_id = store.create_work_record(record)
            logger.info(
                "[%s] Work record created: %s %s start=%s hours=%.2f",
                store.name, employee.display_name, work_date, decision.work_start, decision.computed_hours,
            )
            return replace(record, record_id=record_id)

        record = replace(existing, work_end=decision.work_end, computed_hours=decision.computed_hours)
        store.update_work_record(record)
        logger.info(
            "[%s] Work record updated: %s %s end=%s hours=%.2f",
            store.name, employee.display_name, work_date, decision.work_end, decision.computed_hours,
        )
        return record
