"""
Rebalancing API Routes
"""

from fastapi import APIRouter, Depends, HTTPException, Query

from basket_yield.api.dependencies import get_coordinator
from basket_yield.domain.errors import UserNotFoundError
from basket_yield.domain.services.processing_coordinator import ProcessingCoordinator

router = APIRouter()


@router.post("/{user_id}/evaluate")
async def evaluate_rebalancing(
    user_id: int,
    coordinator: ProcessingCoordinator = Depends(get_coordinator),
):
    """Ask for a fresh recommendation and switch baskets if the gate passes"""
    try:
        decision = await coordinator.evaluate_and_maybe_rebalance(user_id)
    except UserNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    return decision.to_dict()


@router.get("/{user_id}/history")
async def get_rebalancing_history(
    user_id: int,
    limit: int = Query(10, ge=1, le=100),
    coordinator: ProcessingCoordinator = Depends(get_coordinator),
):
    return await coordinator.get_rebalancing_history(user_id, limit)
