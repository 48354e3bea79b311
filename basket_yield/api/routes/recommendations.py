"""
Recommendation API Routes
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from basket_yield.api.dependencies import get_coordinator
from basket_yield.domain.errors import UserNotFoundError
from basket_yield.domain.services.processing_coordinator import ProcessingCoordinator

router = APIRouter()


class RecommendationResponse(BaseModel):
    recommended_basket_id: int
    confidence: int
    reasoning: str
    expected_yield_bp: int
    risk_score: int
    produced_at: str
    is_fallback: bool
    user_id: Optional[int]


@router.get("/recent", response_model=List[RecommendationResponse])
async def get_recent_recommendations(
    limit: int = Query(10, ge=1, le=100),
    coordinator: ProcessingCoordinator = Depends(get_coordinator),
):
    recommendations = await coordinator.get_recent_recommendations(limit)
    return [r.to_dict() for r in recommendations]


@router.get("/{user_id}", response_model=RecommendationResponse)
async def get_user_recommendation(
    user_id: int,
    coordinator: ProcessingCoordinator = Depends(get_coordinator),
):
    """Fresh recommendation tailored to the user's risk tier"""
    try:
        recommendation = await coordinator.get_user_recommendation(user_id)
    except UserNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    return recommendation.to_dict()
