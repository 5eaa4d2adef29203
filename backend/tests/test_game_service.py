"""
backend/tests/test_game_service.py

Purpose:
    Game upserts keyed by provider event id, the sync step and spread wording.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from app.services import game_service

from conftest import OPPONENT, TRACKED, add_game


def _game_data(external_id: str = "evt-1", spread: float = -3.5) -> dict:
    return {
        "external_id": external_id,
        "home_team": TRACKED,
        "away_team": OPPONENT,
        "tracked_team": TRACKED,
        "start_time": datetime(2030, 1, 5, 0, 30, tzinfo=timezone.utc),
        "spread": spread,
    }


@pytest.mark.asyncio
async def test_upsert_inserts_then_refreshes_spread(fake_db):
    created = await game_service.upsert_game(_game_data(spread=-3.5))
    refreshed = await game_service.upsert_game(_game_data(spread=-5.0))

    assert len(fake_db.games.docs) == 1
    assert created["status"] == "upcoming"
    assert created["wager_count"] == 0
    assert refreshed["spread"] == -5.0
    assert refreshed["_id"] == created["_id"]


@pytest.mark.asyncio
async def test_upsert_leaves_finished_game_untouched(fake_db):
    await add_game(
        fake_db, external_id="evt-1", spread=-2.0, status="finished",
        final_home_score=100, final_away_score=95,
    )

    game = await game_service.upsert_game(_game_data(spread=-9.0))

    assert game is None
    assert len(fake_db.games.docs) == 1
    assert fake_db.games.docs[0]["status"] == "finished"
    assert fake_db.games.docs[0]["spread"] == -2.0


@pytest.mark.asyncio
async def test_upcoming_games_sorted_by_start(fake_db):
    later = await add_game(fake_db, starts_in=timedelta(days=3))
    sooner = await add_game(fake_db, starts_in=timedelta(hours=3))
    await add_game(fake_db, status="finished")

    games = await game_service.get_upcoming_games()
    next_only = await game_service.get_upcoming_games(limit=1)

    assert [str(g["_id"]) for g in games] == [sooner, later]
    assert str(next_only[0]["_id"]) == sooner


@pytest.mark.asyncio
async def test_sync_stores_only_next_tracked_game_by_default(fake_db, monkeypatch):
    events = [
        {"external_id": "b", "home_team": OPPONENT, "away_team": TRACKED,
         "commence_time": "2030-01-07T00:00:00Z", "spreads": {TRACKED: 2.5, OPPONENT: -2.5}},
        {"external_id": "a", "home_team": TRACKED, "away_team": OPPONENT,
         "commence_time": "2030-01-05T00:00:00Z", "spreads": {TRACKED: -4.5, OPPONENT: 4.5}},
        {"external_id": "x", "home_team": "Miami Heat", "away_team": OPPONENT,
         "commence_time": "2030-01-04T00:00:00Z", "spreads": {"Miami Heat": 1.0}},
    ]

    async def _spreads(_sport_key=None):
        return events

    monkeypatch.setattr(game_service.odds_provider, "get_spreads", _spreads)

    stored = await game_service.sync_games()
    assert [g["external_id"] for g in stored] == ["a"]
    assert stored[0]["spread"] == -4.5

    stored_all = await game_service.sync_games(all_games=True)
    assert [g["external_id"] for g in stored_all] == ["a", "b"]
    assert len(fake_db.games.docs) == 2


@pytest.mark.asyncio
async def test_sync_skips_events_without_tracked_spread(fake_db, monkeypatch):
    async def _spreads(_sport_key=None):
        return [{"external_id": "a", "home_team": TRACKED, "away_team": OPPONENT,
                 "commence_time": "2030-01-05T00:00:00Z", "spreads": {}}]

    monkeypatch.setattr(game_service.odds_provider, "get_spreads", _spreads)

    assert await game_service.sync_games() == []
    assert fake_db.games.docs == []


@pytest.mark.asyncio
async def test_sync_leaves_locked_games_out_of_stored(fake_db, monkeypatch):
    await add_game(fake_db, external_id="a", status="finished")
    await add_game(fake_db, external_id="b", settlement={"home": 99, "away": 98, "started_at": None})
    events = [
        {"external_id": ext, "home_team": TRACKED, "away_team": OPPONENT,
         "commence_time": f"2030-01-0{day}T00:00:00Z", "spreads": {TRACKED: -1.5, OPPONENT: 1.5}}
        for day, ext in ((5, "a"), (6, "b"), (7, "c"))
    ]

    async def _spreads(_sport_key=None):
        return events

    monkeypatch.setattr(game_service.odds_provider, "get_spreads", _spreads)

    stored = await game_service.sync_games()

    assert [g["external_id"] for g in stored] == ["c"]
    locked = {g["external_id"]: g for g in fake_db.games.docs if g["external_id"] != "c"}
    assert locked["a"]["status"] == "finished"
    assert locked["b"]["spread"] == -4.5


def test_spread_explanation_wording():
    assert game_service.spread_explanation(-4.5, TRACKED) == f"{TRACKED} favored by 4.5 points"
    assert game_service.spread_explanation(3.0, TRACKED) == f"{TRACKED} underdogs by 3 points"
    assert game_service.spread_explanation(0.0, TRACKED) == "Even spread (pick 'em)"
