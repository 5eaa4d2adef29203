"""
backend/tests/test_routers.py

Purpose:
    HTTP contract of the auth, user, games and wagers routers, including
    the ServiceError -> status code mapping.
"""

from __future__ import annotations

import asyncio

from bson import ObjectId
from fastapi import FastAPI, HTTPException
from fastapi.testclient import TestClient

from app.database import get_db
from app.providers.odds_api import OddsProviderError
from app.routers.auth import router as auth_router
from app.routers.games import router as games_router
from app.routers.user import router as user_router
from app.routers.wagers import router as wagers_router
from app.services import game_service
from app.services.auth_service import get_admin_user, get_current_user

from conftest import add_game, add_user


def _build_test_client(
    fake_db, user_id: str | None = None, admin_ok: bool | None = True,
) -> TestClient:
    app = FastAPI()
    for router in (auth_router, user_router, games_router, wagers_router):
        app.include_router(router)

    async def _fake_get_db():
        return fake_db

    app.dependency_overrides[get_db] = _fake_get_db

    if user_id:
        async def _fake_user():
            return await fake_db.users.find_one({"_id": ObjectId(user_id)})
        app.dependency_overrides[get_current_user] = _fake_user

    if admin_ok:
        async def _fake_admin():
            return {"_id": ObjectId(), "role": "admin"}
        app.dependency_overrides[get_admin_user] = _fake_admin
    elif admin_ok is False:
        async def _fake_forbidden():
            raise HTTPException(status_code=403, detail="Admins only.")
        app.dependency_overrides[get_admin_user] = _fake_forbidden

    return TestClient(app)


# ---------- Wagers ----------

def test_place_wager_returns_created_wager_and_balance(fake_db):
    user_id = asyncio.run(add_user(fake_db))
    game_id = asyncio.run(add_game(fake_db))
    client = _build_test_client(fake_db, user_id)

    response = client.post("/api/wagers", json={"game_id": game_id, "selection": "tracked"})

    assert response.status_code == 201
    body = response.json()
    assert body["updated_points"] == 900
    assert body["wager"]["status"] == "pending"
    assert body["wager"]["game_id"] == game_id


def test_place_wager_error_kinds_map_to_status_codes(fake_db):
    broke = asyncio.run(add_user(fake_db, points=50))
    user_id = asyncio.run(add_user(fake_db))
    game_id = asyncio.run(add_game(fake_db))

    poor = _build_test_client(fake_db, broke).post(
        "/api/wagers", json={"game_id": game_id, "selection": "tracked"},
    )
    assert poor.status_code == 400
    assert poor.json()["detail"]["code"] == "insufficient_funds"

    client = _build_test_client(fake_db, user_id)
    missing = client.post("/api/wagers", json={"game_id": str(ObjectId()), "selection": "tracked"})
    assert missing.status_code == 404
    assert missing.json()["detail"]["code"] == "not_found"

    assert client.post("/api/wagers", json={"game_id": game_id, "selection": "opponent"}).status_code == 201
    duplicate = client.post("/api/wagers", json={"game_id": game_id, "selection": "tracked"})
    assert duplicate.status_code == 409
    assert duplicate.json()["detail"]["code"] == "conflict"


def test_place_wager_rejects_unknown_selection(fake_db):
    user_id = asyncio.run(add_user(fake_db))
    game_id = asyncio.run(add_game(fake_db))
    client = _build_test_client(fake_db, user_id)

    response = client.post("/api/wagers", json={"game_id": game_id, "selection": "home"})

    assert response.status_code == 422
    assert fake_db.wagers.docs == []


def test_list_and_reset_wagers(fake_db):
    user_id = asyncio.run(add_user(fake_db))
    game_id = asyncio.run(add_game(fake_db))
    client = _build_test_client(fake_db, user_id)
    client.post("/api/wagers", json={"game_id": game_id, "selection": "tracked"})

    listed = client.get("/api/wagers").json()
    assert len(listed) == 1
    assert listed[0]["game"]["tracked_team"] == "Cleveland Cavaliers"

    one = client.get(f"/api/wagers/{listed[0]['id']}")
    assert one.status_code == 200
    assert client.get(f"/api/wagers/{ObjectId()}").status_code == 404

    reset = client.delete("/api/wagers")
    assert reset.status_code == 200
    assert reset.json()["deleted_count"] == 1
    assert client.get("/api/user/me").json()["points"] == 1000


# ---------- Games ----------

def test_next_game_when_none_stored(fake_db):
    client = _build_test_client(fake_db)
    response = client.get("/api/games/next")
    assert response.status_code == 200
    assert response.json()["game"] is None


def test_next_game_includes_spread_explanation(fake_db):
    asyncio.run(add_game(fake_db, spread=-4.5))
    client = _build_test_client(fake_db)

    game = client.get("/api/games/next").json()["game"]

    assert game["is_tracked_home"] is True
    assert game["spread_explanation"] == "Cleveland Cavaliers favored by 4.5 points"
    assert len(client.get("/api/games").json()) == 1


def test_settle_game_endpoint(fake_db):
    user_id = asyncio.run(add_user(fake_db))
    game_id = asyncio.run(add_game(fake_db, spread=-6))
    client = _build_test_client(fake_db, user_id)
    client.post("/api/wagers", json={"game_id": game_id, "selection": "opponent"})

    response = client.post(
        f"/api/games/{game_id}/settle", json={"final_home_score": 106, "final_away_score": 100},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["totals"] == {"total": 1, "won": 0, "lost": 0, "push": 1}
    assert body["game"]["status"] == "finished"
    assert client.get("/api/user/me").json()["points"] == 1000
    assert [a["action"] for a in fake_db.audit_logs.docs] == ["GAME_SETTLED"]

    again = client.post(
        f"/api/games/{game_id}/settle", json={"final_home_score": 106, "final_away_score": 100},
    )
    assert again.status_code == 400
    assert again.json()["detail"]["code"] == "invalid_state"


def test_settle_game_requires_admin(fake_db):
    game_id = asyncio.run(add_game(fake_db))
    client = _build_test_client(fake_db, admin_ok=False)

    response = client.post(
        f"/api/games/{game_id}/settle", json={"final_home_score": 1, "final_away_score": 0},
    )

    assert response.status_code == 403
    assert fake_db.games.docs[0]["status"] == "upcoming"


def test_settle_game_rejects_negative_scores(fake_db):
    game_id = asyncio.run(add_game(fake_db))
    client = _build_test_client(fake_db)

    response = client.post(
        f"/api/games/{game_id}/settle", json={"final_home_score": -1, "final_away_score": 0},
    )

    assert response.status_code == 422


def test_sync_maps_provider_rate_limit(fake_db, monkeypatch):
    async def _rate_limited(all_games=False):
        raise OddsProviderError("Odds API rate limit exceeded.", 429)

    monkeypatch.setattr(game_service, "sync_games", _rate_limited)
    client = _build_test_client(fake_db)

    assert client.post("/api/games/sync").status_code == 429


# ---------- Auth ----------

def test_first_login_registers_then_verifies_password(fake_db):
    client = _build_test_client(fake_db)
    creds = {"email": "Fan@Example.com", "password": "correct horse"}

    first = client.post("/api/auth/login", json=creds)
    assert first.status_code == 200
    body = first.json()
    assert body["token"]
    assert body["user"]["email"] == "fan@example.com"
    assert body["user"]["points"] == 1000
    assert "access_token" in first.cookies
    [initial] = fake_db.points_transactions.docs
    assert initial["type"] == "INITIAL_CREDIT"

    again = client.post("/api/auth/login", json=creds)
    assert again.status_code == 200
    assert len(fake_db.users.docs) == 1

    wrong = client.post("/api/auth/login", json={**creds, "password": "wrong password"})
    assert wrong.status_code == 401
    assert [a["action"] for a in fake_db.audit_logs.docs] == [
        "REGISTER", "LOGIN_SUCCESS", "LOGIN_FAILED",
    ]


def test_bearer_token_authenticates_me(fake_db):
    client = _build_test_client(fake_db)
    token = client.post(
        "/api/auth/login", json={"email": "fan@example.com", "password": "correct horse"},
    ).json()["token"]
    client.cookies.clear()

    assert client.get("/api/user/me").status_code == 401
    me = client.get("/api/user/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 200
    assert me.json()["role"] == "user"

    txns = client.get("/api/user/transactions", headers={"Authorization": f"Bearer {token}"})
    assert [t["type"] for t in txns.json()] == ["INITIAL_CREDIT"]


def test_admin_routes_reject_ordinary_users(fake_db):
    client = _build_test_client(fake_db, admin_ok=None)
    token = client.post(
        "/api/auth/login", json={"email": "fan@example.com", "password": "correct horse"},
    ).json()["token"]

    response = client.post("/api/games/sync", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 403
