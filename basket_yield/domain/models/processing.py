"""
DOMAIN MODELS — PROCESSING CYCLE
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from basket_yield.domain.models.recommendation import Recommendation
from basket_yield.domain.models.yields import AssetYieldSample, BasketYieldSnapshot
from basket_yield.utils.time import to_utc


class CycleStatus(str, Enum):
    COMPLETED = "completed"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class ProcessingStatus:
    is_processing: bool
    last_completion_timestamp: Optional[datetime]

    def to_dict(self) -> Dict[str, Any]:
        ts = self.last_completion_timestamp
        return {
            "is_processing": self.is_processing,
            "last_completion_timestamp": to_utc(ts).isoformat() if ts else None,
        }


@dataclass(frozen=True)
class CycleResult:
    """Outcome of one run_cycle() call"""
    status: CycleStatus
    reason: Optional[str] = None
    samples: Tuple[AssetYieldSample, ...] = field(default_factory=tuple)
    snapshots: Tuple[BasketYieldSnapshot, ...] = field(default_factory=tuple)
    recommendation: Optional[Recommendation] = None
    failed_symbols: Tuple[str, ...] = field(default_factory=tuple)
    cached_symbols: Tuple[str, ...] = field(default_factory=tuple)
    history_persisted: bool = False
    completed_at: Optional[datetime] = None
    duration_ms: int = 0

    @classmethod
    def skipped(cls, reason: str) -> "CycleResult":
        return cls(status=CycleStatus.SKIPPED, reason=reason)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "reason": self.reason,
            "samples": [s.to_dict() for s in self.samples],
            "snapshots": [s.to_dict() for s in self.snapshots],
            "recommendation": self.recommendation.to_dict() if self.recommendation else None,
            "failed_symbols": list(self.failed_symbols),
            "cached_symbols": list(self.cached_symbols),
            "history_persisted": self.history_persisted,
            "completed_at": to_utc(self.completed_at).isoformat() if self.completed_at else None,
            "duration_ms": self.duration_ms,
        }
