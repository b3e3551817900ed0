"""
Types for reconciliation passes.
"""

from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class UnitOutcome(Enum):
    """What applying one provider outcome did."""
    CONFIRMED = "confirmed"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class ReconciliationReport:
    """Counters of one reconciliation pass over a network."""
    chain_id: int
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    transactions_requested: int = 0
    transactions_confirmed: int = 0
    transactions_failed: int = 0
    transactions_still_pending: int = 0
    transactions_skipped: int = 0
    sales_created: int = 0
    units_failed: int = 0
    failures: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def duration(self) -> float:
        if self.start_time is None or self.end_time is None:
            return 0.0
        return (self.end_time - self.start_time).total_seconds()

    @property
    def is_complete(self) -> bool:
        return self.units_failed == 0

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["start_time"] = self.start_time.isoformat() if self.start_time else None
        data["end_time"] = self.end_time.isoformat() if self.end_time else None
        data["duration"] = self.duration
        return data
