from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from ..stores.model import WorkRecord
from .strategies.base import WorkRecordStrategy
from .strategies.first_scan_strategy import FirstScanStrategy
from .strategies.follow_up_strategy import FollowUpScanStrategy


@dataclass
class WorkRecordStrategyFactory:
    """Factory Pattern: first scan of the day vs. any later scan."""

    first_scan: WorkRecordStrategy = field(default_factory=FirstScanStrategy)
    follow_up: WorkRecordStrategy = field(default_factory=FollowUpScanStrategy)

    def for_record(self, existing: Optional[WorkRecord]) -> WorkRecordStrategy:
        if existing is None:
            return self.first_scan
        return self.follow_up
