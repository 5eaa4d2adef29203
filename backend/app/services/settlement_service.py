"""
backend/app/services/settlement_service.py

Purpose:
    Settlement engine. Takes a game's final score, resolves every pending
    wager against the spread, credits winners and pushes through the ledger,
    and closes the game.

Dependencies:
    - app.database
    - app.services.ledger_service
"""

import logging
from typing import Optional

from pymongo import ReturnDocument

from app.config import settings
import app.database as _db
from app.models.common import ServiceError, invalid_state, not_found
from app.models.game import GameStatus, SettlementTotals
from app.models.ledger import TransactionType
from app.models.wager import WagerSelection, WagerStatus
from app.services import ledger_service
from app.utils import parse_object_id, utcnow

logger = logging.getLogger("courtside.settlement_service")


# ---------- Pure resolution ----------

def cover_margin(
    home_team: str, tracked_team: str, spread: float,
    final_home: int, final_away: int,
) -> float:
    """Tracked team's point differential plus its spread.

    Positive means the tracked team covered, negative means it did not,
    zero is a push.
    """
    home_diff = final_home - final_away
    tracked_diff = home_diff if tracked_team == home_team else -home_diff
    return tracked_diff + spread


def resolve_outcome(
    selection: str, margin: float,
    *, cost: Optional[int] = None, payout: Optional[int] = None,
) -> tuple[WagerStatus, int]:
    """Outcome and awarded points for one wager given the cover margin.

    Push refunds the cost, a win pays the full payout, a loss pays nothing.
    """
    cost = settings.WAGER_COST if cost is None else cost
    payout = settings.WAGER_PAYOUT if payout is None else payout

    if margin == 0:
        return WagerStatus.push, cost

    winning_side = WagerSelection.tracked if margin > 0 else WagerSelection.opponent
    if WagerSelection(selection) == winning_side:
        return WagerStatus.won, payout
    return WagerStatus.lost, 0


# ---------- Settlement ----------

async def settle_game(
    game_id: str, final_home: int, final_away: int,
) -> dict | ServiceError:
    """Settle a game and pay out its wagers.

    Returns ``{"game": <finished game doc>, "totals": SettlementTotals}`` or a
    ServiceError (not_found, invalid_state). Storage errors propagate.

    Ordering: claim the game with a settlement marker, resolve wagers one by
    one with a conditional pending -> outcome update (the credit only follows
    a matched update), then flip the game to finished as the last write. A
    settlement interrupted before that last write can be re-run with the
    same score and picks up the wagers still pending or still owed a payout.
    Credits are keyed by wager id, so a retried payout is never paid twice.
    """
    game_oid = parse_object_id(game_id)
    game = await _db.db.games.find_one({"_id": game_oid}) if game_oid else None
    if not game:
        return not_found(f"Game with ID {game_id} not found.")
    if game["status"] == GameStatus.finished.value:
        return invalid_state("Game has already been settled.")

    marker = game.get("settlement")
    if marker and (marker.get("home"), marker.get("away")) != (final_home, final_away):
        return invalid_state(
            "A settlement with a different final score is already in progress "
            f"({marker.get('home')}-{marker.get('away')})."
        )

    logger.info(
        "Settling game %s: %s %d @ %s %d",
        game_id, game["away_team"], final_away, game["home_team"], final_home,
    )

    async with _db.transaction() as session:
        claimed = await _claim(game, final_home, final_away, session)
        if claimed is None:
            return invalid_state("Game has already been settled.")

        margin = cover_margin(
            claimed["home_team"],
            claimed.get("tracked_team") or settings.TRACKED_TEAM,
            claimed["spread"],
            final_home, final_away,
        )
        logger.info(
            "Game %s: spread=%s cover_margin=%s", game_id, claimed["spread"], margin,
        )

        totals = SettlementTotals()
        # Pending wagers plus any resolved by an interrupted run but not yet paid
        wagers = await _db.db.wagers.find(
            {
                "game_id": game_id,
                "$or": [{"status": WagerStatus.pending.value}, {"payout_pending": True}],
            },
            session=session,
        ).to_list(length=None)

        for wager in wagers:
            if wager["status"] == WagerStatus.pending.value:
                outcome, points = resolve_outcome(wager["selection"], margin, cost=wager.get("cost"))
            else:
                outcome, points = WagerStatus(wager["status"]), wager["points_awarded"]
            if not await _settle_wager(wager, outcome, points, claimed, session):
                continue

            totals.total += 1
            if outcome == WagerStatus.won:
                totals.won += 1
            elif outcome == WagerStatus.lost:
                totals.lost += 1
            else:
                totals.push += 1

        finished = await _db.db.games.find_one_and_update(
            {"_id": game_oid, "status": GameStatus.upcoming.value},
            {
                "$set": {
                    "status": GameStatus.finished.value,
                    "final_home_score": final_home,
                    "final_away_score": final_away,
                    "settlement": None,
                    "updated_at": utcnow(),
                },
            },
            return_document=ReturnDocument.AFTER,
            session=session,
        )

    if finished is None:
        # A concurrent run with the same score closed the game first
        return invalid_state("Game has already been settled.")

    logger.info(
        "Settlement complete for %s: %d won, %d lost, %d push",
        game_id, totals.won, totals.lost, totals.push,
    )
    return {"game": finished, "totals": totals}


async def _claim(game: dict, final_home: int, final_away: int, session) -> Optional[dict]:
    """Write the settlement marker; None when the game is no longer upcoming.

    Also matches a marker with the same score so an interrupted run resumes.
    """
    return await _db.db.games.find_one_and_update(
        {
            "_id": game["_id"],
            "status": GameStatus.upcoming.value,
            "$or": [
                {"settlement": None},
                {"settlement.home": final_home, "settlement.away": final_away},
            ],
        },
        {
            "$set": {
                "settlement": {"home": final_home, "away": final_away, "started_at": utcnow()},
                "updated_at": utcnow(),
            },
        },
        return_document=ReturnDocument.AFTER,
        session=session,
    )


async def _settle_wager(
    wager: dict, outcome: WagerStatus, points: int, game: dict, session,
) -> bool:
    """Resolve one wager exactly once. Returns False if it was already settled.

    A resolved wager that still owes a payout (``payout_pending``) is not
    re-resolved; only its credit is retried.
    """
    if wager["status"] == WagerStatus.pending.value:
        now = utcnow()
        result = await _db.db.wagers.update_one(
            {"_id": wager["_id"], "status": WagerStatus.pending.value},
            {
                "$set": {
                    "status": outcome.value,
                    "points_awarded": points,
                    "payout_pending": points > 0,
                    "settled_at": now,
                    "updated_at": now,
                },
            },
            session=session,
        )
        if result.modified_count != 1:
            logger.info("Wager %s already settled, skipping", wager["_id"])
            return False

    if points > 0:
        await _pay(wager, outcome, points, game, session)
    return True


async def _pay(wager: dict, outcome: WagerStatus, points: int, game: dict, session) -> None:
    wager_key = str(wager["_id"])
    tx_type = TransactionType.WAGER_WON if outcome == WagerStatus.won else TransactionType.WAGER_PUSH
    await ledger_service.credit_once(
        wager["user_id"], points, tx_type,
        description=f"{outcome.value.capitalize()}: {game['away_team']} @ {game['home_team']}",
        credit_key=wager_key,
        session=session,
    )
    # The applied key must outlive the payout_pending flag
    await _db.db.wagers.update_one(
        {"_id": wager["_id"]},
        {"$set": {"payout_pending": False}},
        session=session,
    )
    await ledger_service.release_credit(wager["user_id"], wager_key, session=session)
    logger.info("Awarded %d points to user %s (%s)", points, wager["user_id"], outcome.value)
