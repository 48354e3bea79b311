"""
DOMAIN MODELS — RECOMMENDATION

Output of the recommendation engine. Persisted append-only, never mutated.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from basket_yield.utils.time import to_utc


@dataclass(frozen=True)
class Recommendation:
    """
    Validated basket recommendation.

    All numeric fields are already clamped:
    confidence 0-100, expected_yield_bp 0-5000, risk_score 0-100.
    """
    recommended_basket_id: int
    confidence: int
    reasoning: str
    expected_yield_bp: int
    risk_score: int
    produced_at: datetime
    is_fallback: bool = False
    user_id: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "recommended_basket_id": self.recommended_basket_id,
            "confidence": self.confidence,
            "reasoning": self.reasoning,
            "expected_yield_bp": self.expected_yield_bp,
            "risk_score": self.risk_score,
            "produced_at": to_utc(self.produced_at).isoformat(),
            "is_fallback": self.is_fallback,
            "user_id": self.user_id,
        }
