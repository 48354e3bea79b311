"""
Recommendation Repository
Append-only history of AI (and fallback) recommendations
"""

from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from basket_yield.domain.models import Recommendation
from basket_yield.infrastructure.db.models import RecommendationModel
from basket_yield.utils.time import to_db, to_utc


class RecommendationRepository:
    """Repository for Recommendation"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, recommendation: Recommendation) -> int:
        model = RecommendationModel(
            user_id=recommendation.user_id,
            recommended_basket=recommendation.recommended_basket_id,
            confidence_score=recommendation.confidence,
            reasoning=recommendation.reasoning,
            expected_yield_bp=recommendation.expected_yield_bp,
            risk_score=recommendation.risk_score,
            is_fallback=recommendation.is_fallback,
            produced_at=to_db(recommendation.produced_at),
        )
        self.session.add(model)
        await self.session.flush()
        return model.id

    async def get_recent(self, limit: int = 10) -> List[Recommendation]:
        """Newest first"""
        result = await self.session.execute(
            select(RecommendationModel)
            .order_by(RecommendationModel.produced_at.desc(), RecommendationModel.id.desc())
            .limit(limit)
        )
        return [self._to_domain(m) for m in result.scalars().all()]

    async def get_latest_for_user(self, user_id: int) -> Optional[Recommendation]:
        result = await self.session.execute(
            select(RecommendationModel)
            .where(RecommendationModel.user_id == user_id)
            .order_by(RecommendationModel.produced_at.desc(), RecommendationModel.id.desc())
            .limit(1)
        )
        return self._to_domain(result.scalars().first())

    @staticmethod
    def _to_domain(model: Optional[RecommendationModel]) -> Optional[Recommendation]:
        if model is None:
            return None
        return Recommendation(
            recommended_basket_id=model.recommended_basket,
            confidence=model.confidence_score,
            reasoning=model.reasoning,
            expected_yield_bp=model.expected_yield_bp,
            risk_score=model.risk_score,
            produced_at=to_utc(model.produced_at),
            is_fallback=bool(model.is_fallback),
            user_id=model.user_id,
        )
