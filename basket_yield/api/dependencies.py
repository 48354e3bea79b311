"""
Route dependencies
Services are created in the application lifespan and stored on app.state.
"""

from fastapi import HTTPException, Request

from basket_yield.domain.services.processing_coordinator import ProcessingCoordinator


def get_coordinator(request: Request) -> ProcessingCoordinator:
    coordinator = getattr(request.app.state, "coordinator", None)
    if coordinator is None:
        raise HTTPException(status_code=503, detail="Yield service not initialized")
    return coordinator
