from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class GameStatus(str, Enum):
    upcoming = "upcoming"
    finished = "finished"


class SettlementMarker(BaseModel):
    """In-progress settlement, written before any wager is touched."""
    home: int
    away: int
    started_at: datetime


class GameInDB(BaseModel):
    """Game document as stored in MongoDB.

    A game moves exactly once: upcoming -> finished. Final scores are set
    if and only if the status is finished.
    """
    external_id: str                      # The Odds API event id
    home_team: str
    away_team: str
    tracked_team: str                     # one of home_team / away_team
    start_time: datetime
    spread: float                         # tracked team's line, negative = favored
    status: GameStatus = GameStatus.upcoming
    final_home_score: Optional[int] = None
    final_away_score: Optional[int] = None
    settlement: Optional[SettlementMarker] = None
    wager_count: int = 0
    created_at: datetime
    updated_at: datetime


class GameResponse(BaseModel):
    """Game data returned to the client."""
    id: str
    external_id: str
    home_team: str
    away_team: str
    tracked_team: str
    start_time: datetime
    spread: float
    status: GameStatus
    final_home_score: Optional[int] = None
    final_away_score: Optional[int] = None
    is_tracked_home: bool
    spread_explanation: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class SettleGameRequest(BaseModel):
    """Request body for settling a game with its final score."""
    final_home_score: int = Field(..., ge=0)
    final_away_score: int = Field(..., ge=0)


class SettlementTotals(BaseModel):
    total: int = 0
    won: int = 0
    lost: int = 0
    push: int = 0


class SettleGameResponse(BaseModel):
    message: str
    game: GameResponse
    totals: SettlementTotals
