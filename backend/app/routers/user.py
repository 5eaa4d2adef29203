"""Profile and ledger history for the signed-in user."""

from fastapi import APIRouter, Depends, Query

from app.models.ledger import TransactionResponse
from app.models.user import UserResponse
from app.services import ledger_service
from app.services.auth_service import get_current_user
from app.utils import as_utc

router = APIRouter(prefix="/api/user", tags=["user"])


def user_to_response(user: dict) -> UserResponse:
    return UserResponse(
        id=str(user["_id"]),
        email=user["email"],
        name=user.get("name"),
        points=user.get("points", 0),
        role=user.get("role", "user"),
        created_at=as_utc(user["created_at"]),
    )


@router.get("/me", response_model=UserResponse)
async def get_me(user=Depends(get_current_user)):
    return user_to_response(user)


@router.get("/transactions", response_model=list[TransactionResponse])
async def get_transactions(
    limit: int = Query(50, ge=1, le=200),
    skip: int = Query(0, ge=0),
    user=Depends(get_current_user),
):
    """Ledger history, newest first."""
    txns = await ledger_service.get_transactions(str(user["_id"]), limit, skip)
    return [
        TransactionResponse(
            id=str(t["_id"]),
            type=t["type"],
            amount=t["amount"],
            balance_after=t["balance_after"],
            reference_id=t.get("reference_id"),
            description=t["description"],
            created_at=as_utc(t["created_at"]),
        )
        for t in txns
    ]
