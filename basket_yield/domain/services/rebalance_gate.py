"""
REBALANCE DECISION GATE

RESPONSIBILITIES:
- Decide whether a recommendation should move a user to another basket
- Hand triggered switches to the swap executor
- Update the basket of record only after the executor reports success

RULES (evaluated in order):
1. Recommended basket == current basket → no action (ALREADY_OPTIMAL)
2. Confidence < 70 → no action (LOW_CONFIDENCE)
3. Otherwise → trigger

❌ The threshold is not configurable
❌ Executor or store failures never raise into the caller
✅ Every triggered switch ends in exactly one success or failure audit event
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime
from typing import Callable, List, Optional

from basket_yield.domain.errors import UserNotFoundError
from basket_yield.domain.models import (
    AuditEvent,
    AuditEventType,
    RebalanceDecision,
    RebalanceReason,
    Recommendation,
    SwapResult,
    UserAccount,
)
from basket_yield.domain.services.audit import AuditDispatcher
from basket_yield.infrastructure.db.repositories.rebalance_repository import RebalanceTransactionRepository
from basket_yield.infrastructure.db.repositories.user_repository import UserRepository
from basket_yield.infrastructure.execution.types import SwapExecutor
from basket_yield.utils.time import utc_now

logger = logging.getLogger(__name__)

MIN_CONFIDENCE = 70


def decide(user_id: int, current_basket_id: int, recommendation: Recommendation) -> RebalanceDecision:
    """Pure gate: no I/O, no execution"""
    target = recommendation.recommended_basket_id
    confidence = recommendation.confidence

    if target == current_basket_id:
        reason = RebalanceReason.ALREADY_OPTIMAL
    elif confidence < MIN_CONFIDENCE:
        reason = RebalanceReason.LOW_CONFIDENCE
    else:
        reason = RebalanceReason.TRIGGERED

    return RebalanceDecision(
        user_id=user_id,
        from_basket_id=current_basket_id,
        to_basket_id=target,
        triggered=reason == RebalanceReason.TRIGGERED,
        reason=reason,
        confidence=confidence,
    )


class RebalanceDecisionGate:
    def __init__(
        self,
        executor: SwapExecutor,
        audit: AuditDispatcher,
        session_factory,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.executor = executor
        self.audit = audit
        self.session_factory = session_factory
        self.clock = clock

    async def evaluate(self, user: UserAccount, recommendation: Recommendation) -> RebalanceDecision:
        decision = decide(user.id, user.selected_basket, recommendation)

        if decision.reason == RebalanceReason.ALREADY_OPTIMAL:
            logger.info("User %s already in optimal basket %s", user.id, user.selected_basket)
            return decision
        if decision.reason == RebalanceReason.LOW_CONFIDENCE:
            logger.info(
                "AI confidence too low for user %s: %s%% < %s%%",
                user.id,
                decision.confidence,
                MIN_CONFIDENCE,
            )
            return decision

        return await self._execute(decision)

    async def _execute(self, decision: RebalanceDecision) -> RebalanceDecision:
        events: List[AuditEvent] = [
            AuditEvent(
                event_type=AuditEventType.REBALANCING_START,
                message=(
                    f"Rebalancing user {decision.user_id}: basket "
                    f"{decision.from_basket_id} -> {decision.to_basket_id}"
                ),
                payload=decision.to_dict(),
                basket_id=decision.to_basket_id,
                user_id=decision.user_id,
            )
        ]
        transaction_id = await self._record_pending(decision)

        try:
            result = await self.executor.execute(
                decision.user_id, decision.from_basket_id, decision.to_basket_id
            )
        except Exception as exc:
            logger.error("Swap execution raised for user %s: %s", decision.user_id, exc)
            result = SwapResult(success=False, error=str(exc))

        if result.success:
            record_error = await self._record_success(replace(decision, execution=result), transaction_id)
            if record_error is not None:
                # swap went through but the store still holds the old basket
                result = replace(
                    result,
                    success=False,
                    error=f"Swap {result.tx_reference} succeeded but basket of record update failed: {record_error}",
                )

        executed = replace(decision, execution=result)

        if result.success:
            logger.info(
                "Rebalanced user %s to basket %s (%s)",
                decision.user_id,
                decision.to_basket_id,
                result.tx_reference,
            )
            events.append(
                AuditEvent(
                    event_type=AuditEventType.REBALANCING_SUCCESS,
                    message=f"User {decision.user_id} moved to basket {decision.to_basket_id}",
                    payload=executed.to_dict(),
                    basket_id=decision.to_basket_id,
                    user_id=decision.user_id,
                )
            )
        else:
            await self._record_failure(executed, transaction_id)
            logger.error("Rebalancing failed for user %s: %s", decision.user_id, result.error)
            events.append(
                AuditEvent(
                    event_type=AuditEventType.REBALANCING_FAILED,
                    message=f"Rebalancing failed for user {decision.user_id}: {result.error}",
                    payload=executed.to_dict(),
                    basket_id=decision.from_basket_id,
                    user_id=decision.user_id,
                )
            )

        await self.audit.dispatch(events)
        return executed

    async def _record_pending(self, decision: RebalanceDecision) -> Optional[int]:
        try:
            async with self.session_factory() as session:
                transaction_id = await RebalanceTransactionRepository(session).create_pending(
                    decision.user_id,
                    decision.from_basket_id,
                    decision.to_basket_id,
                    decision.confidence,
                )
                await session.commit()
                return transaction_id
        except Exception as exc:
            logger.error("Failed to record pending rebalance for user %s: %s", decision.user_id, exc)
            return None

    async def _record_success(self, decision: RebalanceDecision, transaction_id: Optional[int]) -> Optional[str]:
        """Commit the basket change; returns the error text if nothing was committed"""
        execution = decision.execution
        try:
            async with self.session_factory() as session:
                updated = await UserRepository(session).update_basket(decision.user_id, decision.to_basket_id)
                if not updated:
                    raise UserNotFoundError(decision.user_id)
                if transaction_id is not None:
                    await RebalanceTransactionRepository(session).mark_completed(
                        transaction_id,
                        self.clock(),
                        tx_reference=execution.tx_reference,
                        gas_used=execution.gas_used,
                    )
                await session.commit()
        except Exception as exc:
            logger.error(
                "Swap succeeded but basket of record update failed for user %s: %s",
                decision.user_id,
                exc,
            )
            return str(exc)
        return None

    async def _record_failure(self, decision: RebalanceDecision, transaction_id: Optional[int]) -> None:
        if transaction_id is None:
            return
        try:
            async with self.session_factory() as session:
                await RebalanceTransactionRepository(session).mark_failed(
                    transaction_id, self.clock(), decision.execution.error
                )
                await session.commit()
        except Exception as exc:
            logger.error("Failed to record rebalance failure for user %s: %s", decision.user_id, exc)
