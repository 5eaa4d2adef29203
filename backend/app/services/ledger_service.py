"""Points ledger: atomic balance operations plus an immutable transaction log.

Every balance change is a single ``$inc`` on the user document; nothing here
reads a balance, adjusts it in Python and writes it back.
"""

import logging
from typing import Optional

from bson import ObjectId
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

import app.database as _db
from app.models.ledger import TransactionType
from app.utils import utcnow

logger = logging.getLogger("courtside.ledger_service")


async def debit(
    user_id: str, amount: int, tx_type: TransactionType, description: str,
    reference_id: Optional[str] = None, session=None,
) -> Optional[int]:
    """Atomically take ``amount`` points from a user. Returns the new balance.

    The ``points >= amount`` guard sits in the filter, so an overdraft simply
    matches nothing and None comes back (unknown user or insufficient funds).
    """
    user = await _db.db.users.find_one_and_update(
        {"_id": ObjectId(user_id), "points": {"$gte": amount}},
        {"$inc": {"points": -amount}, "$set": {"updated_at": utcnow()}},
        projection={"points": 1},
        return_document=ReturnDocument.AFTER,
        session=session,
    )
    if not user:
        return None

    await _log_transaction(
        user_id=user_id,
        tx_type=tx_type,
        amount=-amount,
        balance_after=user["points"],
        reference_id=reference_id,
        description=description,
        session=session,
    )
    return user["points"]


async def credit(
    user_id: str, amount: int, tx_type: TransactionType, description: str,
    reference_id: Optional[str] = None, session=None,
) -> Optional[int]:
    """Atomically add ``amount`` points to a user. Returns the new balance."""
    user = await _db.db.users.find_one_and_update(
        {"_id": ObjectId(user_id)},
        {"$inc": {"points": amount}, "$set": {"updated_at": utcnow()}},
        projection={"points": 1},
        return_document=ReturnDocument.AFTER,
        session=session,
    )
    if not user:
        logger.error("User not found for credit: %s (%d points)", user_id, amount)
        return None

    await _log_transaction(
        user_id=user_id,
        tx_type=tx_type,
        amount=amount,
        balance_after=user["points"],
        reference_id=reference_id,
        description=description,
        session=session,
    )
    return user["points"]


async def credit_once(
    user_id: str, amount: int, tx_type: TransactionType, description: str,
    credit_key: str, session=None,
) -> Optional[int]:
    """Credit ``amount`` points at most once per ``credit_key``. Safe to repeat.

    The user document remembers applied keys in ``applied_credits``, so the
    ``$inc`` and the key land in one atomic write. The ledger entry is an
    upsert on the same key; a retry after a crash between the two writes
    adds the missing entry without paying again. Returns the balance, or None
    for an unknown user.
    """
    user = await _db.db.users.find_one_and_update(
        {"_id": ObjectId(user_id), "applied_credits": {"$ne": credit_key}},
        {
            "$inc": {"points": amount},
            "$push": {"applied_credits": credit_key},
            "$set": {"updated_at": utcnow()},
        },
        projection={"points": 1},
        return_document=ReturnDocument.AFTER,
        session=session,
    )
    if not user:
        user = await _db.db.users.find_one(
            {"_id": ObjectId(user_id)}, {"points": 1}, session=session,
        )
        if not user:
            logger.error("User not found for credit: %s (%d points)", user_id, amount)
            return None
        logger.info("Credit %s already applied to user %s", credit_key, user_id)

    entry = _transaction_doc(
        user_id, tx_type, amount, user["points"], description, reference_id=credit_key,
    )
    try:
        await _db.db.points_transactions.update_one(
            {"credit_key": credit_key},
            {"$setOnInsert": entry},
            upsert=True,
            session=session,
        )
    except DuplicateKeyError:
        # A concurrent retry wrote the entry first
        pass
    return user["points"]


async def release_credit(user_id: str, credit_key: str, session=None) -> None:
    """Forget an applied key once its owner has recorded the payout."""
    await _db.db.users.update_one(
        {"_id": ObjectId(user_id)},
        {"$pull": {"applied_credits": credit_key}},
        session=session,
    )


async def reset_balance(user_id: str, balance: int) -> Optional[int]:
    """Set a user's balance back to ``balance`` and log the difference."""
    before = await _db.db.users.find_one_and_update(
        {"_id": ObjectId(user_id)},
        {"$set": {"points": balance, "updated_at": utcnow()}},
        projection={"points": 1},
        return_document=ReturnDocument.BEFORE,
    )
    if not before:
        return None

    await _log_transaction(
        user_id=user_id,
        tx_type=TransactionType.BALANCE_RESET,
        amount=balance - before.get("points", 0),
        balance_after=balance,
        description=f"Balance reset to {balance} points",
    )
    logger.info("Balance reset: user=%s %d -> %d", user_id, before.get("points", 0), balance)
    return balance


async def record_initial_credit(user_id: str, balance: int) -> None:
    """Log the starting balance a new user was created with."""
    await _log_transaction(
        user_id=user_id,
        tx_type=TransactionType.INITIAL_CREDIT,
        amount=balance,
        balance_after=balance,
        description="Starting balance",
    )


async def get_transactions(user_id: str, limit: int = 50, skip: int = 0) -> list[dict]:
    """Get ledger history for a user, newest first."""
    return await _db.db.points_transactions.find(
        {"user_id": user_id},
    ).sort("created_at", -1).skip(skip).limit(limit).to_list(length=limit)


def _transaction_doc(
    user_id: str, tx_type: TransactionType, amount: int, balance_after: int,
    description: str, reference_id: Optional[str] = None,
) -> dict:
    return {
        "user_id": user_id,
        "type": tx_type.value,
        "amount": amount,
        "balance_after": balance_after,
        "reference_type": "wager" if reference_id else None,
        "reference_id": reference_id,
        "description": description,
        "created_at": utcnow(),
    }


async def _log_transaction(
    user_id: str, tx_type: TransactionType, amount: int, balance_after: int,
    description: str, reference_id: Optional[str] = None, session=None,
) -> None:
    """Insert an immutable ledger record."""
    await _db.db.points_transactions.insert_one(
        _transaction_doc(user_id, tx_type, amount, balance_after, description, reference_id),
        session=session,
    )
