"""
Rebalancing Transaction Repository
Audit log for basket switches. Rows are created as pending and moved to
completed/failed exactly once.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from basket_yield.infrastructure.db.models import RebalanceStatusEnum, RebalancingTransactionModel
from basket_yield.utils.time import to_db, to_utc


class RebalanceTransactionRepository:
    """Repository for rebalancing transactions"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create_pending(
        self,
        user_id: int,
        from_basket: int,
        to_basket: int,
        confidence: int,
    ) -> int:
        model = RebalancingTransactionModel(
            user_id=user_id,
            from_basket=from_basket,
            to_basket=to_basket,
            confidence=confidence,
            status=RebalanceStatusEnum.PENDING,
        )
        self.session.add(model)
        await self.session.flush()
        return model.id

    async def mark_completed(
        self,
        transaction_id: int,
        completed_at: datetime,
        tx_reference: Optional[str] = None,
        gas_used: Optional[int] = None,
    ) -> None:
        model = await self.session.get(RebalancingTransactionModel, transaction_id)
        if model is None:
            return
        model.status = RebalanceStatusEnum.COMPLETED
        model.tx_reference = tx_reference
        model.gas_used = gas_used
        model.completed_at = to_db(completed_at)
        await self.session.flush()

    async def mark_failed(self, transaction_id: int, completed_at: datetime, error: Optional[str]) -> None:
        model = await self.session.get(RebalancingTransactionModel, transaction_id)
        if model is None:
            return
        model.status = RebalanceStatusEnum.FAILED
        model.error_message = error
        model.completed_at = to_db(completed_at)
        await self.session.flush()

    async def get_history(self, user_id: int, limit: int = 10) -> List[Dict[str, Any]]:
        """Newest first"""
        result = await self.session.execute(
            select(RebalancingTransactionModel)
            .where(RebalancingTransactionModel.user_id == user_id)
            .order_by(RebalancingTransactionModel.created_at.desc(), RebalancingTransactionModel.id.desc())
            .limit(limit)
        )
        return [self._to_dict(m) for m in result.scalars().all()]

    @staticmethod
    def _to_dict(model: RebalancingTransactionModel) -> Dict[str, Any]:
        return {
            "id": model.id,
            "user_id": model.user_id,
            "from_basket": model.from_basket,
            "to_basket": model.to_basket,
            "status": RebalanceStatusEnum(model.status).value,
            "confidence": model.confidence,
            "tx_reference": model.tx_reference,
            "gas_used": model.gas_used,
            "error_message": model.error_message,
            "created_at": to_utc(model.created_at).isoformat(),
            "completed_at": to_utc(model.completed_at).isoformat() if model.completed_at else None,
        }
