"""
DOMAIN MODELS — AUDIT EVENTS

Tagged events emitted at the end of each computation stage and handed to
an audit sink. Producing an event never performs I/O.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from basket_yield.utils.time import utc_now


class AuditEventType(str, Enum):
    AI_DECISION = "AI_DECISION"
    REBALANCING_START = "REBALANCING_START"
    REBALANCING_SUCCESS = "REBALANCING_SUCCESS"
    REBALANCING_FAILED = "REBALANCING_FAILED"
    YIELD_UPDATE = "YIELD_UPDATE"
    USER_REGISTRATION = "USER_REGISTRATION"


@dataclass(frozen=True)
class AuditEvent:
    event_type: AuditEventType
    message: str
    payload: Dict[str, Any] = field(default_factory=dict)
    basket_id: Optional[int] = None
    user_id: Optional[int] = None
    ts: datetime = field(default_factory=utc_now)


def yield_update_event(basket_id: int, weighted_yield_bp: int, payload: Dict[str, Any]) -> AuditEvent:
    return AuditEvent(
        event_type=AuditEventType.YIELD_UPDATE,
        message=f"Yield updated: Basket {basket_id} weighted yield {weighted_yield_bp} bps",
        payload=payload,
        basket_id=basket_id,
    )


def ai_decision_event(
    basket_id: int,
    confidence: int,
    reasoning: str,
    user_id: Optional[int] = None,
) -> AuditEvent:
    return AuditEvent(
        event_type=AuditEventType.AI_DECISION,
        message=f"AI recommended basket {basket_id} with {confidence}% confidence",
        payload={"recommended_basket_id": basket_id, "confidence": confidence, "reasoning": reasoning},
        basket_id=basket_id,
        user_id=user_id,
    )
