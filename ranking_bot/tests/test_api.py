"""
Tests for the ranking REST API.

Uses pytest with FastAPI TestClient; data is seeded through the app's own
event loop so the aiosqlite connection never crosses loops.
"""

import logging

import pytest
from fastapi.testclient import TestClient

from ranking_bot.api.app import create_app
from ranking_bot.api.routes import logs as logs_route
from ranking_bot.core.ranking_service import RankingService
from ranking_bot.core.storage_engine import RankingStorageEngine


@pytest.fixture
def client(sample_config):
    service = RankingService(RankingStorageEngine(sample_config.db_path))
    app = create_app(service, config=sample_config, bot_status=lambda: {"online": True, "guilds": 1})
    with TestClient(app) as test_client:
        test_client.portal.call(service.register_guild, "100", "Test Guild", "1")
        yield test_client


def _create_event(client, **overrides):
    body = {"name": "Weekly", "score_type": "points", "created_by": "1"}
    body.update(overrides)
    response = client.post("/api/guilds/100/events", json=body)
    assert response.status_code == 201, response.text
    return response.json()


def _score(client, event_id, user_id, username, score):
    response = client.post(
        f"/api/events/{event_id}/scores",
        json={"user_id": user_id, "username": username, "score": score, "added_by": "1"},
    )
    assert response.status_code == 201, response.text
    return response.json()


def test_health_and_status(client):
    health = client.get("/api/health").json()
    assert health["status"] == "ok"
    assert health["database"] is True

    assert client.get("/api/bot/status").json() == {"online": True, "guilds": 1}
    assert client.get("/api/scheduler/status").json()["running"] is False


def test_guild_endpoints(client):
    guilds = client.get("/api/guilds").json()
    assert [g["guild_id"] for g in guilds] == ["100"]
    assert client.get("/api/guilds/100").json()["guild_name"] == "Test Guild"

    missing = client.get("/api/guilds/404")
    assert missing.status_code == 404
    assert missing.json()["code"] == "NOT_FOUND"


def test_create_event_defaults_and_listing(client):
    race = _create_event(client, name="Race", score_type="time_seconds")
    assert race["sort_direction"] == "asc"
    assert race["score_aggregation"] == "sum"

    _create_event(client, name="Points")
    events = client.get("/api/guilds/100/events").json()
    assert {e["name"] for e in events} == {"Race", "Points"}

    client.post(f"/api/events/{race['id']}/toggle")
    active = client.get("/api/guilds/100/events", params={"active_only": True}).json()
    assert [e["name"] for e in active] == ["Points"]


def test_leaderboard_scenario_and_default_limit(client):
    event = _create_event(client)
    _score(client, event["id"], "1", "A", 10)
    _score(client, event["id"], "1", "A", "20")
    _score(client, event["id"], "2", "B", 25)
    for user in range(3, 15):
        _score(client, event["id"], str(user), f"user{user:02d}", 1)

    board = client.get(f"/api/leaderboard/{event['id']}").json()
    assert len(board) == 10
    assert [(r["display_name"], r["rank"], r["calculated_score"]) for r in board[:2]] == [
        ("A", 1, 30.0),
        ("B", 2, 25.0),
    ]
    assert [r["rank"] for r in board] == list(range(1, 11))

    detail = client.get(f"/api/event-detail/{event['id']}/full").json()
    assert detail["stats"] == {"participant_count": 14, "total_entries": 15}
    assert len(detail["leaderboard"]) == 14


def test_entry_edit_and_delete_round_trip(client):
    event = _create_event(client)
    participant = _score(client, event["id"], "42", "alice", 10)
    participant = client.post(
        f"/api/participants/{participant['id']}/score",
        json={"score": 5, "added_by": "1", "note": "bonus"},
    ).json()
    assert participant["total_score"] == 15.0

    history = client.get("/api/participants/history", params={"eventId": event["id"], "userId": "42"}).json()
    entries = history["entries"]
    assert [e["score"] for e in entries] == [5.0, 10.0]
    ten_id = entries[1]["id"]

    assert client.get(f"/api/score-entries/{ten_id}").json()["score"] == 10.0
    edited = client.put(f"/api/score-entries/{ten_id}", json={"score": 30}).json()
    assert edited["total_score"] == 35.0

    deleted = client.delete(f"/api/score-entries/{entries[0]['id']}").json()
    assert (deleted["total_score"], deleted["entries_count"]) == (30.0, 1)
    assert client.get(f"/api/score-entries/{entries[0]['id']}").status_code == 404


def test_validation_errors_map_to_400(client):
    event = _create_event(client)
    bad_score = client.post(
        f"/api/events/{event['id']}/scores",
        json={"user_id": "1", "username": "a", "score": "lots", "added_by": "1"},
    )
    assert bad_score.status_code == 400
    assert bad_score.json()["code"] == "VALIDATION_ERROR"

    _score(client, event["id"], "1", "a", 1)
    locked = client.patch(f"/api/events/{event['id']}", json={"score_type": "time_seconds"})
    assert locked.status_code == 400

    bad_body = client.post("/api/guilds/100/events", json={"score_type": "points"})
    assert bad_body.status_code == 400
    assert bad_body.json()["code"] == "VALIDATION_ERROR"


def test_inactive_event_rejects_scores(client):
    event = _create_event(client)
    client.patch(f"/api/events/{event['id']}", json={"is_active": False})
    response = client.post(
        f"/api/events/{event['id']}/scores",
        json={"user_id": "1", "username": "a", "score": 1, "added_by": "1"},
    )
    assert response.status_code == 400


def test_patch_aggregation_changes_ranking(client):
    event = _create_event(client)
    _score(client, event["id"], "1", "A", 10)
    _score(client, event["id"], "1", "A", 20)
    _score(client, event["id"], "2", "B", 25)

    updated = client.patch(f"/api/events/{event['id']}", json={"score_aggregation": "average"}).json()
    assert updated["score_aggregation"] == "average"
    board = client.get(f"/api/leaderboard/{event['id']}").json()
    assert [(r["display_name"], r["calculated_score"]) for r in board] == [("B", 25.0), ("A", 15.0)]
    assert board[1]["total_score"] == 30.0

    client.patch(f"/api/events/{event['id']}", json={"score_aggregation": "best"})
    board = client.get(f"/api/leaderboard/{event['id']}").json()
    assert [(r["display_name"], r["calculated_score"], r["total_score"]) for r in board] == [
        ("B", 25.0, None),
        ("A", 20.0, None),
    ]


def test_delete_event_then_not_found(client):
    event = _create_event(client)
    assert client.delete(f"/api/events/{event['id']}").json() == {"deleted": True, "id": event["id"]}
    assert client.get(f"/api/events/{event['id']}").status_code == 404
    assert client.get(f"/api/leaderboard/{event['id']}").status_code == 404


def test_public_views_hide_private_fields(client):
    event = _create_event(client, description="Open to all")
    hidden = _create_event(client, name="Hidden")
    client.post(f"/api/events/{hidden['id']}/toggle")
    _score(client, event["id"], "42", "alice", 7)

    listing = client.get("/api/public/events").json()
    assert [e["id"] for e in listing] == [event["id"]]
    assert listing[0]["guild_name"] == "Test Guild"
    assert listing[0]["participant_count"] == 1

    detail = client.get(f"/api/public/event/{event['id']}").json()
    assert detail["leaderboard"][0] == {
        "rank": 1,
        "display_name": "alice",
        "calculated_score": 7.0,
        "entry_count": 1,
        "avatar_url": None,
    }
    assert "user_id" not in detail["leaderboard"][0]


def test_members_search(client):
    assert client.get("/api/guilds/100/members", params={"search": "x"}).json() == []


def test_client_logs_are_accepted(client):
    response = client.post("/api/logs", json={"level": "error", "message": "boom", "context": {"page": "/"}})
    assert response.status_code == 202
    assert response.json() == {"ok": True}


def test_client_logs_forward_browser_details(client, monkeypatch):
    records = []

    class Recorder:
        def log(self, level, fmt, *args):
            records.append((level, fmt % args))

    monkeypatch.setattr(logs_route, "client_logger", Recorder())
    response = client.post(
        "/api/logs",
        json={
            "level": "warn",
            "message": "chart failed",
            "userAgent": "Mozilla/5.0",
            "url": "https://board.example/public/event/3",
            "timestamp": "2024-05-01T10:00:00Z",
        },
    )

    assert response.status_code == 202
    level, line = records[0]
    assert level == logging.WARNING
    assert "chart failed" in line
    assert "Mozilla/5.0" in line
    assert "https://board.example/public/event/3" in line
    assert "2024-05-01T10:00:00Z" in line
