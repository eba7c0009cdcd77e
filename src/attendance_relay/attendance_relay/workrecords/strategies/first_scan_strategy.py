from __future__ import annotations

from datetime import time
from typing import Optional

from ...common.datetime_utils import floor_time, hours_between
from ...core.constants import ROUNDING_MINUTES, WORK_DAY_END, WORK_DAY_START, WORK_DAY_START_CUTOFF
from ...stores.model import WorkRecord
from .base import WorkRecordDecision, WorkRecordStrategy


class FirstScanStrategy(WorkRecordStrategy):
    """First valid scan of the day opens the record with the default end of day."""

    def __init__(
        self,
        *,
        day_start: time = WORK_DAY_START,
        start_cutoff: time = WORK_DAY_START_CUTOFF,
        day_end: time = WORK_DAY_END,
        rounding_minutes: int = ROUNDING_MINUTES,
    ):
        self._day_start = day_start
        self._start_cutoff = start_cutoff
        self._day_end = day_end
        self._rounding = rounding_minutes

    def decide(self, *, scan_time: time, existing: Optional[WorkRecord]) -> WorkRecordDecision:
        if scan_time < self._start_cutoff:
            start = self._day_start
        else:
            start = floor_time(scan_time, self._rounding)
        return WorkRecordDecision(
            work_start=start,
            work_end=self._day_end,
            computed_hours=hours_between(start, self._day_end),
        )
