"""
Basket History Repository
Basket snapshots are inserted as one batch per cycle and never updated.
"""

from datetime import datetime
from typing import List, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from basket_yield.domain.models import AssetContribution, BasketYieldSnapshot
from basket_yield.infrastructure.db.models import BasketHistoryModel
from basket_yield.utils.time import to_db, to_utc


class BasketHistoryRepository:
    """Repository for BasketYieldSnapshot"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create_batch(self, snapshots: Sequence[BasketYieldSnapshot]) -> List[int]:
        """
        Insert all snapshots of one cycle.

        The caller owns the transaction; either every row is committed or none.
        """
        models = [
            BasketHistoryModel(
                basket_id=snapshot.basket_id,
                basket_name=snapshot.basket_name,
                average_yield_bp=snapshot.simple_average_yield_bp,
                weighted_yield_bp=snapshot.weighted_yield_bp,
                asset_yields=[c.to_dict() for c in snapshot.contributions],
                computed_at=to_db(snapshot.computed_at),
            )
            for snapshot in snapshots
        ]
        self.session.add_all(models)
        await self.session.flush()
        return [m.id for m in models]

    async def get_latest_per_basket(self) -> List[BasketYieldSnapshot]:
        """Most recent snapshot for every basket id, ordered by basket id"""
        latest = (
            select(
                BasketHistoryModel.basket_id.label("basket_id"),
                func.max(BasketHistoryModel.computed_at).label("max_ts"),
            )
            .group_by(BasketHistoryModel.basket_id)
            .subquery()
        )
        result = await self.session.execute(
            select(BasketHistoryModel)
            .join(
                latest,
                (BasketHistoryModel.basket_id == latest.c.basket_id)
                & (BasketHistoryModel.computed_at == latest.c.max_ts),
            )
            .order_by(BasketHistoryModel.basket_id, BasketHistoryModel.id.desc())
        )
        snapshots = []
        seen = set()
        for model in result.scalars().all():
            if model.basket_id in seen:
                continue
            seen.add(model.basket_id)
            snapshots.append(self._to_domain(model))
        return snapshots

    async def get_since(self, since: datetime) -> List[BasketYieldSnapshot]:
        """Snapshots computed at or after `since`, oldest first"""
        result = await self.session.execute(
            select(BasketHistoryModel)
            .where(BasketHistoryModel.computed_at >= to_db(since))
            .order_by(BasketHistoryModel.computed_at.asc(), BasketHistoryModel.id.asc())
        )
        return [self._to_domain(m) for m in result.scalars().all()]

    @staticmethod
    def _to_domain(model: Optional[BasketHistoryModel]) -> Optional[BasketYieldSnapshot]:
        if model is None:
            return None
        return BasketYieldSnapshot(
            basket_id=model.basket_id,
            basket_name=model.basket_name,
            simple_average_yield_bp=model.average_yield_bp,
            weighted_yield_bp=model.weighted_yield_bp,
            computed_at=to_utc(model.computed_at),
            contributions=tuple(AssetContribution.from_dict(c) for c in model.asset_yields or []),
        )
