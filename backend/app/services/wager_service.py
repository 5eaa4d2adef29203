"""
backend/app/services/wager_service.py

Purpose:
    Wager placement with an all-or-nothing debit, plus the per-user wager
    queries and the self-service reset.

Dependencies:
    - app.database
    - app.services.ledger_service
"""

import logging
from typing import Optional

from bson import ObjectId
from pymongo.errors import DuplicateKeyError

from app.config import settings
import app.database as _db
from app.models.common import (
    ServiceError,
    conflict,
    insufficient_funds,
    invalid_state,
    not_found,
)
from app.models.game import GameStatus
from app.models.ledger import TransactionType
from app.models.wager import (
    WagerGameSummary,
    WagerResponse,
    WagerSelection,
    WagerStatus,
)
from app.services import ledger_service
from app.utils import as_utc, ensure_utc, parse_object_id, utcnow

logger = logging.getLogger("courtside.wager_service")


class _Rejected(Exception):
    """Aborts the placement block; carries the error returned to the caller."""

    def __init__(self, error: ServiceError):
        super().__init__(error.message)
        self.error = error


# ---------- Placement ----------

async def place_wager(
    user_id: str, game_id: str, selection: WagerSelection,
) -> dict | ServiceError:
    """Place a fixed-cost wager on one side of a game's spread.

    Returns ``{"wager": <doc>, "updated_points": <int>}`` or a ServiceError:
    - not_found: game (or user) does not exist
    - invalid_state: game finished, started, or being settled
    - insufficient_funds: balance below WAGER_COST (nothing is debited)
    - conflict: the user already has a wager on this game
    """
    cost = settings.WAGER_COST
    now = utcnow()

    game_oid = parse_object_id(game_id)
    game = await _db.db.games.find_one({"_id": game_oid}) if game_oid else None
    if not game:
        return not_found(f"Game with ID {game_id} not found.")

    if game["status"] != GameStatus.upcoming.value or game.get("settlement"):
        return invalid_state(f"Cannot place a wager on a game with status: {game['status']}.")
    if ensure_utc(game["start_time"]) <= now:
        return invalid_state("Cannot place a wager on a game that has already started.")

    user = await _db.db.users.find_one({"_id": ObjectId(user_id)}, {"points": 1})
    if not user:
        return not_found("User not found.")
    if user.get("points", 0) < cost:
        logger.warning("Insufficient points: user=%s points=%s cost=%d", user_id, user.get("points"), cost)
        return insufficient_funds(
            f"Insufficient points. You need {cost} points to place a wager, "
            f"but you only have {user.get('points', 0)} points."
        )

    existing = await _db.db.wagers.find_one({"user_id": user_id, "game_id": game_id}, {"_id": 1})
    if existing:
        return conflict("You have already placed a wager on this game.")

    try:
        async with _db.transaction() as session:
            placed = await _debit_and_insert(
                user_id, game, selection, cost, now, session,
            )
    except _Rejected as exc:
        logger.warning(
            "Wager rejected: user=%s game=%s kind=%s", user_id, game_id, exc.error.kind.value,
        )
        return exc.error

    logger.info(
        "Wager placed: user=%s game=%s selection=%s cost=%d balance=%d",
        user_id, game_id, selection.value, cost, placed["updated_points"],
    )
    return placed


async def _debit_and_insert(
    user_id: str, game: dict, selection: WagerSelection,
    cost: int, now, session,
) -> dict:
    """Gate on the game, debit, insert. Raises _Rejected on a lost race.

    Inside a transaction any exception aborts every write. Without one, each
    completed step is undone in reverse before the exception propagates, so a
    debit never survives without its wager. A wager that settlement resolved
    in the meantime is kept and reported as placed.
    """
    game_oid = game["_id"]
    game_id = str(game_oid)

    # Conditional touch: fails once settlement has claimed the game
    gate = await _db.db.games.update_one(
        {
            "_id": game_oid,
            "status": GameStatus.upcoming.value,
            "settlement": None,
            "start_time": {"$gt": now},
        },
        {"$inc": {"wager_count": 1}},
        session=session,
    )
    if gate.matched_count == 0:
        raise _Rejected(invalid_state("This game is no longer open for wagers."))

    debited = False
    wager_oid: Optional[ObjectId] = None
    undone = False
    try:
        balance = await ledger_service.debit(
            user_id, cost, TransactionType.WAGER_PLACED,
            description=f"Wager: {game['away_team']} @ {game['home_team']} ({selection.value})",
            reference_id=game_id,
            session=session,
        )
        if balance is None:
            raise _Rejected(insufficient_funds(
                f"Insufficient points. You need {cost} points to place a wager."
            ))
        debited = True

        wager_doc = {
            "user_id": user_id,
            "game_id": game_id,
            "selection": selection.value,
            "cost": cost,
            "status": WagerStatus.pending.value,
            "points_awarded": 0,
            "settled_at": None,
            "created_at": now,
            "updated_at": now,
        }
        try:
            result = await _db.db.wagers.insert_one(wager_doc, session=session)
        except DuplicateKeyError:
            raise _Rejected(conflict("You have already placed a wager on this game."))
        wager_oid = result.inserted_id
        wager_doc["_id"] = wager_oid

        if session is None:
            # Settlement may have snapshotted wagers between the gate and the insert
            still_open = await _db.db.games.find_one(
                {"_id": game_oid, "status": GameStatus.upcoming.value, "settlement": None},
                {"_id": 1},
            )
            if not still_open:
                undone = True
                if await _undo_placement(user_id, game_oid, cost, debited, wager_oid):
                    raise _Rejected(invalid_state("This game is no longer open for wagers."))
                return await _settled_during_placement(user_id, wager_oid)

        return {"wager": wager_doc, "updated_points": balance}

    except BaseException:
        if session is None and not undone:
            await _undo_placement(user_id, game_oid, cost, debited, wager_oid)
        raise


async def _undo_placement(
    user_id: str, game_oid: ObjectId, cost: int,
    debited: bool, wager_oid: Optional[ObjectId],
) -> bool:
    """Reverse a partially applied placement (no-transaction mode only).

    Returns False, touching nothing, when settlement already resolved the
    inserted wager: it stands as placed and its debit must stay.
    """
    if wager_oid is not None:
        removed = await _db.db.wagers.delete_one(
            {"_id": wager_oid, "status": WagerStatus.pending.value},
        )
        if removed.deleted_count == 0:
            logger.warning(
                "Wager %s was settled during placement; keeping it: user=%s game=%s",
                wager_oid, user_id, game_oid,
            )
            return False
    if debited:
        await ledger_service.credit(
            user_id, cost, TransactionType.WAGER_REFUND,
            description="Wager placement rolled back",
            reference_id=str(game_oid),
        )
    await _db.db.games.update_one({"_id": game_oid}, {"$inc": {"wager_count": -1}})
    logger.warning("Placement rolled back: user=%s game=%s debited=%s", user_id, game_oid, debited)
    return True


async def _settled_during_placement(user_id: str, wager_oid: ObjectId) -> dict:
    wager = await _db.db.wagers.find_one({"_id": wager_oid})
    user = await _db.db.users.find_one({"_id": ObjectId(user_id)}, {"points": 1})
    return {"wager": wager, "updated_points": user["points"]}


# ---------- Queries ----------

async def list_wagers(user_id: str, with_game: bool = True) -> list[dict]:
    """All wagers of a user, newest first, each with its game attached."""
    wagers = await _db.db.wagers.find({"user_id": user_id}).sort("created_at", -1).to_list(length=500)
    if with_game and wagers:
        game_oids = [oid for oid in (parse_object_id(w["game_id"]) for w in wagers) if oid]
        games = await _db.db.games.find({"_id": {"$in": game_oids}}).to_list(length=len(game_oids))
        games_by_id = {str(g["_id"]): g for g in games}
        for w in wagers:
            w["game"] = games_by_id.get(w["game_id"])
    logger.debug("Found %d wager(s) for user %s", len(wagers), user_id)
    return wagers


async def get_wager(wager_id: str, user_id: str) -> dict | ServiceError:
    """One of the user's own wagers; other users' wagers read as not found."""
    oid = parse_object_id(wager_id)
    wager = await _db.db.wagers.find_one({"_id": oid, "user_id": user_id}) if oid else None
    if not wager:
        return not_found("Wager not found.")
    game_oid = parse_object_id(wager["game_id"])
    wager["game"] = await _db.db.games.find_one({"_id": game_oid}) if game_oid else None
    return wager


async def reset_wagers(user_id: str) -> int:
    """Delete all of a user's wagers and restore the starting balance."""
    wagers = await _db.db.wagers.find({"user_id": user_id}, {"game_id": 1}).to_list(length=None)
    result = await _db.db.wagers.delete_many({"user_id": user_id})
    for w in wagers:
        game_oid = parse_object_id(w["game_id"])
        if game_oid:
            await _db.db.games.update_one({"_id": game_oid}, {"$inc": {"wager_count": -1}})

    await ledger_service.reset_balance(user_id, settings.STARTING_POINTS)
    logger.info(
        "Deleted %d wager(s) and reset points to %d for user %s",
        result.deleted_count, settings.STARTING_POINTS, user_id,
    )
    return result.deleted_count


# ---------- Response mapping ----------

def wager_to_response(wager: dict) -> WagerResponse:
    game = wager.get("game")
    summary = None
    if game:
        summary = WagerGameSummary(
            external_id=game["external_id"],
            home_team=game["home_team"],
            away_team=game["away_team"],
            tracked_team=game.get("tracked_team") or settings.TRACKED_TEAM,
            start_time=as_utc(game["start_time"]),
            spread=game["spread"],
            status=game["status"],
            final_home_score=game.get("final_home_score"),
            final_away_score=game.get("final_away_score"),
        )
    return WagerResponse(
        id=str(wager["_id"]),
        user_id=wager["user_id"],
        game_id=wager["game_id"],
        selection=wager["selection"],
        status=wager["status"],
        cost=wager.get("cost", settings.WAGER_COST),
        points_awarded=wager.get("points_awarded", 0),
        settled_at=as_utc(wager.get("settled_at")),
        created_at=as_utc(wager["created_at"]),
        updated_at=as_utc(wager.get("updated_at")),
        game=summary,
    )
