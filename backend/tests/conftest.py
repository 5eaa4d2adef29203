"""
backend/tests/conftest.py

Purpose:
    Shared pytest bootstrap: import paths, the minimal environment the
    settings module requires, and an in-memory database fixture.
"""

from __future__ import annotations

from datetime import timedelta
import os
import sys
from pathlib import Path

import pytest
from bson import ObjectId

_THIS_FILE = Path(__file__).resolve()
_TESTS_DIR = _THIS_FILE.parent
_BACKEND_DIR = _THIS_FILE.parents[1]

for candidate in (str(_BACKEND_DIR), str(_TESTS_DIR)):
    if candidate not in sys.path:
        sys.path.insert(0, candidate)

# Settings are read at import time
os.environ.setdefault("MONGO_URI", "mongodb://localhost:27017")
os.environ.setdefault("MONGO_DB", "courtside_test")
os.environ.setdefault("JWT_SECRET", "test-secret-not-for-production-use-0123456789")
os.environ.setdefault("MONGO_TRANSACTIONS", "false")
os.environ.setdefault("TRACKED_TEAM", "Cleveland Cavaliers")

import app.database as _db  # noqa: E402
from app.utils import utcnow  # noqa: E402
from fake_mongo import make_fake_db  # noqa: E402

TRACKED = "Cleveland Cavaliers"
OPPONENT = "Boston Celtics"


@pytest.fixture
def fake_db(monkeypatch):
    db = make_fake_db()
    monkeypatch.setattr(_db, "db", db, raising=False)
    return db


async def add_user(db, points: int = 1000, email: str | None = None, role: str = "user") -> str:
    now = utcnow()
    result = await db.users.insert_one({
        "email": email or f"{ObjectId()}@example.com",
        "name": "tester",
        "hashed_password": "x",
        "points": points,
        "role": role,
        "created_at": now,
        "updated_at": now,
    })
    return str(result.inserted_id)


async def add_game(
    db, *, spread: float = -4.5, tracked_home: bool = True,
    starts_in: timedelta = timedelta(hours=6), **overrides,
) -> str:
    now = utcnow()
    doc = {
        "external_id": str(ObjectId()),
        "home_team": TRACKED if tracked_home else OPPONENT,
        "away_team": OPPONENT if tracked_home else TRACKED,
        "tracked_team": TRACKED,
        "start_time": now + starts_in,
        "spread": spread,
        "status": "upcoming",
        "final_home_score": None,
        "final_away_score": None,
        "settlement": None,
        "wager_count": 0,
        "created_at": now,
        "updated_at": now,
    }
    doc.update(overrides)
    result = await db.games.insert_one(doc)
    return str(result.inserted_id)


async def balance(db, user_id: str) -> int:
    user = await db.users.find_one({"_id": ObjectId(user_id)})
    return user["points"]
