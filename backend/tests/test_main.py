"""
backend/tests/test_main.py

Purpose:
    App wiring: health endpoint, request id header, the per-request log
    line and the clean validation error body.
"""

from __future__ import annotations

import asyncio
import json
import logging

from fastapi.testclient import TestClient

from app.main import app
from app.services.auth_service import create_access_token

from conftest import add_user


def test_health_reports_db_and_provider(fake_db):
    # No context manager: the lifespan (real Mongo connect) is skipped
    client = TestClient(app)

    response = client.get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["odds_provider"]["circuit"] == "closed"
    assert response.headers["X-Request-ID"]


def test_validation_errors_are_flattened(fake_db):
    client = TestClient(app)

    response = client.post("/api/auth/login", json={"email": "not-an-email", "password": "short"})

    assert response.status_code == 422
    fields = {e["field"] for e in response.json()["errors"]}
    assert fields == {"email", "password"}


def _request_lines(caplog) -> list[dict]:
    return [json.loads(r.getMessage()) for r in caplog.records if r.name == "courtside.http"]


def test_request_log_line_names_the_signed_in_user(fake_db, caplog):
    user_id = asyncio.run(add_user(fake_db, email="fan@example.com"))
    token = create_access_token(user_id, "fan@example.com")
    client = TestClient(app)

    with caplog.at_level(logging.INFO, logger="courtside.http"):
        me = client.get("/api/user/me", headers={"Authorization": f"Bearer {token}"})
        client.get("/health")

    assert me.status_code == 200
    signed_in, anonymous = _request_lines(caplog)
    assert signed_in["user_id"] == user_id
    assert signed_in["role"] == "user"
    assert signed_in["route"] == "/api/user/me"
    assert signed_in["status"] == 200
    assert anonymous["user_id"] is None
    assert anonymous["path"] == "/health"
