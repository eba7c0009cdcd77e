from __future__ import annotations

from datetime import time
from typing import Optional

from ...common.datetime_utils import floor_time, hours_between
from ...core.constants import ROUNDING_MINUTES, WORK_DAY_END
from ...stores.model import WorkRecord
from .base import WorkRecordDecision, WorkRecordStrategy


class FollowUpScanStrategy(WorkRecordStrategy):
    """Every later scan moves the end of day; the start is never touched."""

    def __init__(self, *, day_end: time = WORK_DAY_END, rounding_minutes: int = ROUNDING_MINUTES):
        self._day_end = day_end
        self._rounding = rounding_minutes

    def decide(self, *, scan_time: time, existing: Optional[WorkRecord]) -> WorkRecordDecision:
        if existing is None or existing.work_start is None:
            raise ValueError("follow-up scan needs an existing record with a start time")

        if scan_time < self._day_end:
            end = floor_time(scan_time, self._rounding)
        else:
            # Scans at or after the end of day keep their exact time.
            end = scan_time.replace(microsecond=0)
        return WorkRecordDecision(
            work_start=existing.work_start,
            work_end=end,
            computed_hours=hours_between(existing.work_start, end),
        )
