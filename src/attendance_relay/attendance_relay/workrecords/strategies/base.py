from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import time
from typing import Optional

from ...stores.model import WorkRecord


@dataclass(frozen=True)
class WorkRecordDecision:
    work_start: time
    work_end: time
    computed_hours: float


class WorkRecordStrategy(ABC):
    """Strategy Pattern: encapsulate how a scan shapes the daily work record."""

    @abstractmethod
    def decide(self, *, scan_time: time, existing: Optional[WorkRecord]) -> WorkRecordDecision:
        raise NotImplementedError
