"""
Yield API Routes
Basket snapshots, asset yields, manual refresh and processing status
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from basket_yield.api.dependencies import get_coordinator
from basket_yield.domain.errors import DataUnavailableError
from basket_yield.domain.models import CycleStatus
from basket_yield.domain.services.processing_coordinator import ProcessingCoordinator

logger = logging.getLogger(__name__)
router = APIRouter()


class ContributionResponse(BaseModel):
    symbol: str
    allocation_bp: int
    asset_yield_bp: int
    contribution_bp: int


class BasketSnapshotResponse(BaseModel):
    basket_id: int
    basket_name: str
    simple_average_yield_bp: int
    weighted_yield_bp: int
    computed_at: str
    contributions: List[ContributionResponse]


class AssetYieldResponse(BaseModel):
    symbol: str
    yield_bp: int
    source_timestamp: str
    source: str
    volatility: float


class ProcessingStatusResponse(BaseModel):
    is_processing: bool
    last_completion_timestamp: Optional[str]


@router.get("/baskets", response_model=List[BasketSnapshotResponse])
async def get_basket_yields(coordinator: ProcessingCoordinator = Depends(get_coordinator)):
    """Latest snapshot per basket (cache first, then history)"""
    snapshots = await coordinator.get_latest_basket_snapshots()
    return [s.to_dict() for s in snapshots]


@router.get("/assets", response_model=List[AssetYieldResponse])
async def get_asset_yields(coordinator: ProcessingCoordinator = Depends(get_coordinator)):
    samples = await coordinator.get_latest_asset_yields()
    return [s.to_dict() for s in samples]


@router.post("/refresh")
async def refresh_yields(coordinator: ProcessingCoordinator = Depends(get_coordinator)):
    """
    Run one yield cycle now.

    Responds 409 with {"status": "skipped"} if a cycle is already running.
    """
    try:
        result = await coordinator.run_cycle()
    except DataUnavailableError as exc:
        logger.warning("Manual yield refresh failed: %s", exc)
        raise HTTPException(status_code=503, detail=str(exc))
    if result.status == CycleStatus.SKIPPED:
        return JSONResponse(status_code=409, content=result.to_dict())
    return result.to_dict()


@router.get("/status", response_model=ProcessingStatusResponse)
async def get_processing_status(coordinator: ProcessingCoordinator = Depends(get_coordinator)):
    return coordinator.get_processing_status().to_dict()
