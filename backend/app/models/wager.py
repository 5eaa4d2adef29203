from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel

from app.models.game import GameStatus


class WagerSelection(str, Enum):
    tracked = "tracked"      # the tracked team covers the spread
    opponent = "opponent"    # the tracked team fails to cover


class WagerStatus(str, Enum):
    pending = "pending"
    won = "won"
    lost = "lost"
    push = "push"


class WagerInDB(BaseModel):
    """A fixed-cost wager on one side of a game's spread.

    At most one per (user_id, game_id). Status only moves from pending to
    won/lost/push; points_awarded stays 0 until then and is fixed afterwards.
    """
    user_id: str
    game_id: str
    selection: WagerSelection
    cost: int
    status: WagerStatus = WagerStatus.pending
    points_awarded: int = 0
    settled_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class WagerCreate(BaseModel):
    """Request body for placing a wager."""
    game_id: str
    selection: WagerSelection


class WagerGameSummary(BaseModel):
    external_id: str
    home_team: str
    away_team: str
    tracked_team: str
    start_time: datetime
    spread: float
    status: GameStatus
    final_home_score: Optional[int] = None
    final_away_score: Optional[int] = None


class WagerResponse(BaseModel):
    """Wager data returned to the client."""
    id: str
    user_id: str
    game_id: str
    selection: WagerSelection
    status: WagerStatus
    cost: int
    points_awarded: int
    settled_at: Optional[datetime] = None
    created_at: datetime
    updated_at: Optional[datetime] = None
    game: Optional[WagerGameSummary] = None


class PlaceWagerResponse(BaseModel):
    message: str
    wager: WagerResponse
    updated_points: int
