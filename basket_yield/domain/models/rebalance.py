"""
DOMAIN MODELS — REBALANCING

Per-user evaluation results. Ephemeral: logged and audited, not stored as
mutable state.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


class RebalanceReason(str, Enum):
    """Outcome reason of a rebalance evaluation"""
    ALREADY_OPTIMAL = "ALREADY_OPTIMAL"
    LOW_CONFIDENCE = "LOW_CONFIDENCE"
    TRIGGERED = "TRIGGERED"


class RebalanceStatus(str, Enum):
    """Status of a rebalancing transaction record"""
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class SwapResult:
    """Result reported by the swap executor"""
    success: bool
    tx_reference: Optional[str] = None
    gas_used: Optional[int] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class RebalanceDecision:
    """Decision for one user; execution is set only when triggered"""
    user_id: int
    from_basket_id: int
    to_basket_id: int
    triggered: bool
    reason: RebalanceReason
    confidence: int = 0
    execution: Optional[SwapResult] = None

    @property
    def succeeded(self) -> bool:
        return self.triggered and self.execution is not None and self.execution.success

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "user_id": self.user_id,
            "from_basket_id": self.from_basket_id,
            "to_basket_id": self.to_basket_id,
            "triggered": self.triggered,
            "reason": self.reason.value,
            "confidence": self.confidence,
            "execution": None,
        }
        if self.execution is not None:
            data["execution"] = {
                "success": self.execution.success,
                "tx_reference": self.execution.tx_reference,
                "gas_used": self.execution.gas_used,
                "error": self.execution.error,
            }
        return data


@dataclass(frozen=True)
class UserAccount:
    """Registered user and their basket of record"""
    id: int
    wallet_address: str
    selected_basket: int
    created_at: datetime
