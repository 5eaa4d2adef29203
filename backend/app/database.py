"""
backend/app/database.py

Purpose:
    MongoDB connection bootstrap, index management, and the optional
    transaction boundary shared by wager placement and settlement.

Dependencies:
    - motor.motor_asyncio
    - app.config
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from motor.motor_asyncio import (
    AsyncIOMotorClient,
    AsyncIOMotorClientSession,
    AsyncIOMotorDatabase,
)

from app.config import settings

client: AsyncIOMotorClient = None
db: AsyncIOMotorDatabase = None

logger = logging.getLogger("courtside.database")


async def connect_db() -> None:
    global client, db
    client = AsyncIOMotorClient(
        settings.MONGO_URI,
        maxPoolSize=25,
        minPoolSize=5,
    )
    db = client[settings.MONGO_DB]
    await _ensure_indexes()
    logger.info(
        "Connected to MongoDB database=%s transactions=%s",
        settings.MONGO_DB, settings.MONGO_TRANSACTIONS,
    )


async def close_db() -> None:
    global client
    if client:
        client.close()


async def get_db() -> AsyncIOMotorDatabase:
    return db


@asynccontextmanager
async def transaction() -> AsyncIterator[Optional[AsyncIOMotorClientSession]]:
    """Yield a session with an open transaction, or None when transactions are off.

    Callers pass the yielded value as ``session=`` to every write. The
    transaction commits when the block exits cleanly and aborts on any
    exception. With ``MONGO_TRANSACTIONS`` disabled the block runs without a
    session and callers rely on their own ordered, conditional writes.
    """
    if not settings.MONGO_TRANSACTIONS or client is None:
        yield None
        return

    async with await client.start_session() as session:
        async with session.start_transaction():
            yield session


async def _ensure_indexes() -> None:
    """Create indexes on startup. Idempotent."""

    # ---- Users ----
    await db.users.create_index("email", unique=True)
    await db.users.create_index("role")

    # ---- Games ----
    await db.games.create_index("external_id", unique=True)
    await db.games.create_index([("status", 1), ("start_time", 1)])
    await db.games.create_index("start_time")

    # ---- Wagers ----
    # One wager per user per game; concurrent duplicates fail here
    await db.wagers.create_index([("user_id", 1), ("game_id", 1)], unique=True)
    await db.wagers.create_index([("game_id", 1), ("status", 1)])
    await db.wagers.create_index([("game_id", 1), ("payout_pending", 1)])
    await db.wagers.create_index([("user_id", 1), ("created_at", -1)])

    # ---- Points ledger ----
    await db.points_transactions.create_index([("user_id", 1), ("created_at", -1)])
    await db.points_transactions.create_index("reference_id", sparse=True)
    # At most one settlement credit per wager
    await db.points_transactions.create_index("credit_key", unique=True, sparse=True)
    await db.points_transactions.create_index("created_at")

    # ---- Audit Logs ----
    await db.audit_logs.create_index([("action", 1), ("timestamp", -1)])
    await db.audit_logs.create_index([("actor_id", 1), ("timestamp", -1)])
    await db.audit_logs.create_index([("target_id", 1), ("timestamp", -1)])
