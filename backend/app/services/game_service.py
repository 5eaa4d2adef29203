"""
backend/app/services/game_service.py

Purpose:
    Game record lookups, upserts keyed by provider event id, spread wording,
    and the sync step that pulls the tracked team's games from The Odds API.

Dependencies:
    - app.database
    - app.providers.odds_api
"""

import logging
from typing import Optional

from pymongo.errors import DuplicateKeyError

from app.config import settings
import app.database as _db
from app.models.game import GameResponse, GameStatus
from app.providers.odds_api import (
    OddsMappingError,
    involves_team,
    map_tracked_game,
    odds_provider,
)
from app.utils import as_utc, parse_object_id, utcnow

logger = logging.getLogger("courtside.game_service")


async def get_game(game_id: str) -> Optional[dict]:
    """Look up a game by its document id. Malformed ids resolve to None."""
    oid = parse_object_id(game_id)
    if oid is None:
        return None
    return await _db.db.games.find_one({"_id": oid})


async def get_upcoming_games(limit: Optional[int] = None) -> list[dict]:
    """Upcoming games, soonest first."""
    cursor = _db.db.games.find({"status": GameStatus.upcoming.value}).sort("start_time", 1)
    if limit:
        cursor = cursor.limit(limit)
    return await cursor.to_list(length=limit or 100)


async def upsert_game(game_data: dict) -> Optional[dict]:
    """Insert or refresh an upcoming game keyed by ``external_id``.

    Finished games and games with a settlement under way are left alone
    and None is returned for them.
    """
    now = utcnow()
    try:
        await _db.db.games.update_one(
            {
                "external_id": game_data["external_id"],
                "status": GameStatus.upcoming.value,
                "settlement": None,
            },
            {
                "$set": {
                    "home_team": game_data["home_team"],
                    "away_team": game_data["away_team"],
                    "tracked_team": game_data["tracked_team"],
                    "start_time": game_data["start_time"],
                    "spread": game_data["spread"],
                    "updated_at": now,
                },
                # status and settlement come from the filter on insert
                "$setOnInsert": {
                    "final_home_score": None,
                    "final_away_score": None,
                    "wager_count": 0,
                    "created_at": now,
                },
            },
            upsert=True,
        )
    except DuplicateKeyError:
        # Filter missed an existing game that is finished or settling
        logger.info("Skipped sync for locked game %s", game_data["external_id"])
        return None

    logger.info("Upserted game: %s", game_data["external_id"])
    return await _db.db.games.find_one({"external_id": game_data["external_id"]})


async def sync_games(all_games: bool = False) -> list[dict]:
    """Pull the tracked team's games from the odds provider and store them.

    With ``all_games`` False only the next game is stored. Events the
    provider lists without a tracked-team spread are skipped, and so are
    games already finished or being settled; neither counts as stored.
    """
    tracked_team = settings.TRACKED_TEAM
    events = await odds_provider.get_spreads(settings.ODDS_SPORT_KEY)

    tracked_events = sorted(
        (e for e in events if involves_team(e, tracked_team)),
        key=lambda e: e["commence_time"],
    )
    if not tracked_events:
        logger.warning("No upcoming %s games found on the odds provider", tracked_team)
        return []

    stored: list[dict] = []
    for event in tracked_events:
        try:
            game_data = map_tracked_game(event, tracked_team)
        except OddsMappingError as exc:
            logger.warning("Skipping event: %s", exc)
            continue

        game = await upsert_game(game_data)
        if game is None:
            continue
        stored.append(game)
        if not all_games:
            break

    logger.info("Synced %d %s game(s)", len(stored), tracked_team)
    return stored


def spread_explanation(spread: float, tracked_team: str) -> str:
    if spread < 0:
        return f"{tracked_team} favored by {abs(spread):g} points"
    if spread > 0:
        return f"{tracked_team} underdogs by {spread:g} points"
    return "Even spread (pick 'em)"


def game_to_response(game: dict) -> GameResponse:
    tracked_team = game.get("tracked_team") or settings.TRACKED_TEAM
    return GameResponse(
        id=str(game["_id"]),
        external_id=game["external_id"],
        home_team=game["home_team"],
        away_team=game["away_team"],
        tracked_team=tracked_team,
        start_time=as_utc(game["start_time"]),
        spread=game["spread"],
        status=game["status"],
        final_home_score=game.get("final_home_score"),
        final_away_score=game.get("final_away_score"),
        is_tracked_home=game["home_team"] == tracked_team,
        spread_explanation=spread_explanation(game["spread"], tracked_team),
        created_at=as_utc(game.get("created_at")),
        updated_at=as_utc(game.get("updated_at")),
    )
