"""Game listing, provider sync and admin settlement endpoints."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from app.models.common import ServiceError
from app.models.game import SettleGameRequest, SettleGameResponse
from app.providers.odds_api import OddsProviderError
from app.routers._errors import raise_for_error
from app.services import game_service, settlement_service
from app.services.audit_service import log_audit
from app.services.auth_service import get_admin_user

logger = logging.getLogger("courtside.games")
router = APIRouter(prefix="/api/games", tags=["games"])


@router.get("/next")
async def get_next_game():
    """The next upcoming game, or null when none is stored."""
    games = await game_service.get_upcoming_games(limit=1)
    if not games:
        return {"game": None, "message": "No upcoming games found."}
    return {"game": game_service.game_to_response(games[0])}


@router.get("")
async def list_upcoming_games(limit: int = Query(10, ge=1, le=100)):
    games = await game_service.get_upcoming_games(limit=limit)
    return [game_service.game_to_response(g) for g in games]


@router.get("/{game_id}")
async def get_game(game_id: str):
    game = await game_service.get_game(game_id)
    if not game:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Game not found.")
    return game_service.game_to_response(game)


@router.post("/sync")
async def sync_games(
    request: Request,
    all_games: bool = Query(False, alias="all"),
    admin=Depends(get_admin_user),
):
    """Pull the tracked team's next game (or all games) from the odds provider."""
    try:
        games = await game_service.sync_games(all_games=all_games)
    except OddsProviderError as exc:
        if exc.status_code == 429:
            raise HTTPException(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail=str(exc))
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc))

    await log_audit(
        actor_id=str(admin["_id"]), target_id="games", action="GAMES_SYNCED",
        metadata={"count": len(games), "all": all_games}, request=request,
    )
    return {
        "games": [game_service.game_to_response(g) for g in games],
        "message": f"Synced {len(games)} game(s).",
    }


@router.post("/{game_id}/settle", response_model=SettleGameResponse)
async def settle_game(
    game_id: str,
    body: SettleGameRequest,
    request: Request,
    admin=Depends(get_admin_user),
):
    """Record the final score and pay out every wager on the game."""
    result = await settlement_service.settle_game(
        game_id, body.final_home_score, body.final_away_score,
    )
    if isinstance(result, ServiceError):
        raise_for_error(result)

    totals = result["totals"]
    await log_audit(
        actor_id=str(admin["_id"]), target_id=game_id, action="GAME_SETTLED",
        metadata={
            "final_home_score": body.final_home_score,
            "final_away_score": body.final_away_score,
            "totals": totals.model_dump(),
        },
        request=request,
    )
    return SettleGameResponse(
        message="Game settled.",
        game=game_service.game_to_response(result["game"]),
        totals=totals,
    )
