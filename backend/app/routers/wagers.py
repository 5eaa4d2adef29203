"""Wager endpoints for the signed-in user."""

from fastapi import APIRouter, Depends, Request, status

from app.models.common import ServiceError
from app.models.wager import PlaceWagerResponse, WagerCreate, WagerResponse
from app.routers._errors import raise_for_error
from app.services import wager_service
from app.services.audit_service import log_audit
from app.services.auth_service import get_current_user

router = APIRouter(prefix="/api/wagers", tags=["wagers"])


@router.post("", status_code=status.HTTP_201_CREATED, response_model=PlaceWagerResponse)
async def place_wager(body: WagerCreate, user=Depends(get_current_user)):
    """Place a wager for the signed-in user (debits the fixed wager cost)."""
    result = await wager_service.place_wager(str(user["_id"]), body.game_id, body.selection)
    if isinstance(result, ServiceError):
        raise_for_error(result)

    return PlaceWagerResponse(
        message="Wager placed.",
        wager=wager_service.wager_to_response(result["wager"]),
        updated_points=result["updated_points"],
    )


@router.get("", response_model=list[WagerResponse])
async def list_wagers(user=Depends(get_current_user)):
    wagers = await wager_service.list_wagers(str(user["_id"]))
    return [wager_service.wager_to_response(w) for w in wagers]


@router.get("/{wager_id}", response_model=WagerResponse)
async def get_wager(wager_id: str, user=Depends(get_current_user)):
    result = await wager_service.get_wager(wager_id, str(user["_id"]))
    if isinstance(result, ServiceError):
        raise_for_error(result)
    return wager_service.wager_to_response(result)


@router.delete("")
async def reset_my_wagers(request: Request, user=Depends(get_current_user)):
    """Delete the user's wagers and restore the starting balance."""
    user_id = str(user["_id"])
    deleted = await wager_service.reset_wagers(user_id)
    await log_audit(
        actor_id=user_id, target_id=user_id, action="WAGERS_RESET",
        metadata={"deleted": deleted}, request=request,
    )
    return {"message": "Your wagers were deleted and your points reset.", "deleted_count": deleted}
