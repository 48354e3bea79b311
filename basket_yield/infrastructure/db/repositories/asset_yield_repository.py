"""
Asset Yield Repository
Append-only per-asset yield samples
"""

from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from basket_yield.domain.models import AssetYieldSample
from basket_yield.infrastructure.db.models import AssetYieldModel
from basket_yield.utils.time import to_db, to_utc


class AssetYieldRepository:
    """Repository for AssetYieldSample"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, sample: AssetYieldSample) -> int:
        model = AssetYieldModel(
            symbol=sample.symbol,
            apr_basis_points=sample.yield_bp,
            volatility=sample.volatility,
            source=sample.source,
            source_timestamp=to_db(sample.source_timestamp),
        )
        self.session.add(model)
        await self.session.flush()
        return model.id

    async def get_latest(self, symbol: str) -> Optional[AssetYieldSample]:
        result = await self.session.execute(
            select(AssetYieldModel)
            .where(AssetYieldModel.symbol == symbol)
            .order_by(AssetYieldModel.source_timestamp.desc(), AssetYieldModel.id.desc())
            .limit(1)
        )
        return self._to_domain(result.scalars().first())

    async def get_latest_per_symbol(self) -> List[AssetYieldSample]:
        """
        Latest sample for every symbol, ordered by symbol.

        Uses a max(source_timestamp) subquery so it runs on both
        PostgreSQL and SQLite.
        """
        latest = (
            select(
                AssetYieldModel.symbol.label("symbol"),
                func.max(AssetYieldModel.source_timestamp).label("max_ts"),
            )
            .group_by(AssetYieldModel.symbol)
            .subquery()
        )
        result = await self.session.execute(
            select(AssetYieldModel)
            .join(
                latest,
                (AssetYieldModel.symbol == latest.c.symbol)
                & (AssetYieldModel.source_timestamp == latest.c.max_ts),
            )
            .order_by(AssetYieldModel.symbol, AssetYieldModel.id.desc())
        )
        samples = []
        seen = set()
        for model in result.scalars().all():
            if model.symbol in seen:
                continue
            seen.add(model.symbol)
            samples.append(self._to_domain(model))
        return samples

    @staticmethod
    def _to_domain(model: Optional[AssetYieldModel]) -> Optional[AssetYieldSample]:
        if model is None:
            return None
        return AssetYieldSample(
            symbol=model.symbol,
            yield_bp=model.apr_basis_points,
            source_timestamp=to_utc(model.source_timestamp),
            source=model.source,
            volatility=model.volatility or 0.0,
        )
