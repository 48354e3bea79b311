"""
Unit Tests for the confidence gate (pure decision, no execution)
"""

import pytest

from basket_yield.domain.models import RebalanceReason, Recommendation
from basket_yield.domain.services.rebalance_gate import MIN_CONFIDENCE, decide
from tests.support import NOW


def recommendation(basket_id: int, confidence: int) -> Recommendation:
    return Recommendation(
        recommended_basket_id=basket_id,
        confidence=confidence,
        reasoning="test",
        expected_yield_bp=900,
        risk_score=40,
        produced_at=NOW,
    )


@pytest.mark.parametrize("confidence", [0, 69, 70, 100])
def test_same_basket_is_already_optimal_regardless_of_confidence(confidence):
    decision = decide(user_id=1, current_basket_id=1, recommendation=recommendation(1, confidence))

    assert decision.triggered is False
    assert decision.reason == RebalanceReason.ALREADY_OPTIMAL


def test_confidence_69_is_low_confidence():
    decision = decide(user_id=1, current_basket_id=0, recommendation=recommendation(2, 69))

    assert decision.triggered is False
    assert decision.reason == RebalanceReason.LOW_CONFIDENCE


def test_confidence_70_triggers():
    decision = decide(user_id=1, current_basket_id=0, recommendation=recommendation(2, 70))

    assert decision.triggered is True
    assert decision.reason == RebalanceReason.TRIGGERED
    assert (decision.from_basket_id, decision.to_basket_id) == (0, 2)
    assert decision.execution is None


def test_threshold_constant():
    assert MIN_CONFIDENCE == 70
