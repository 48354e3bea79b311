"""
User API Routes
"""

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from basket_yield.api.dependencies import get_coordinator
from basket_yield.domain.errors import InvalidRequestError, UserAlreadyRegisteredError, UserNotFoundError
from basket_yield.domain.models import UserAccount
from basket_yield.domain.services.processing_coordinator import ProcessingCoordinator
from basket_yield.utils.time import to_utc

router = APIRouter()


class RegisterUserRequest(BaseModel):
    wallet_address: str
    selected_basket: int


class UserResponse(BaseModel):
    id: int
    wallet_address: str
    selected_basket: int
    created_at: str


def _to_response(user: UserAccount) -> dict:
    return {
        "id": user.id,
        "wallet_address": user.wallet_address,
        "selected_basket": user.selected_basket,
        "created_at": to_utc(user.created_at).isoformat(),
    }


@router.post("", response_model=UserResponse, status_code=201)
async def register_user(
    request: RegisterUserRequest,
    coordinator: ProcessingCoordinator = Depends(get_coordinator),
):
    try:
        user = await coordinator.register_user(request.wallet_address, request.selected_basket)
    except InvalidRequestError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except UserAlreadyRegisteredError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    return _to_response(user)


@router.get("/{user_id}", response_model=UserResponse)
async def get_user(user_id: int, coordinator: ProcessingCoordinator = Depends(get_coordinator)):
    try:
        user = await coordinator.get_user(user_id)
    except UserNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    return _to_response(user)
