"""Tests for the FastAPI Cubedots service."""

from __future__ import annotations

import time

from fastapi.testclient import TestClient

from cubedots import api
from cubedots.api import app


client = TestClient(app)
api.AI_THINK_DELAY = (0.0, 0.0)


def _point(x, y, z):
    return {"x": x, "y": y, "z": z}


def _move(game_id, start, end):
    return client.post(
        f"/api/game/{game_id}/move",
        json={"start": _point(*start), "end": _point(*end)},
    )


def _line(start, end, player):
    return {"start": _point(*start), "end": _point(*end), "player": {"id": player}}


def test_create_game_and_first_move():
    response = client.post("/api/game", json={})
    assert response.status_code == 200
    payload = response.json()
    assert payload["gridSize"] == 4
    assert payload["currentPlayer"]["id"] == "player1"
    assert payload["moveLog"] == []
    assert payload["availableMoves"] == 3 * 4 * 4 * 3
    assert len(payload["cubes"]) == 27

    move_response = _move(payload["id"], (0, 0, 0), (1, 0, 0))
    assert move_response.status_code == 200
    state = move_response.json()
    assert state["lines"][0]["player"] == {"id": "player1"}
    assert state["moveLog"][0]["player"] == "player1"
    assert state["currentPlayer"]["id"] == "player2"
    assert state["turn"] == 1
    assert state["lastMove"]["start"] == _point(0, 0, 0)


def test_invalid_move_rejected():
    game_id = client.post("/api/game", json={"gridSize": 3}).json()["id"]
    assert _move(game_id, (0, 0, 0), (1, 0, 0)).status_code == 200

    duplicate = _move(game_id, (1, 0, 0), (0, 0, 0))
    assert duplicate.status_code == 400
    assert duplicate.json()["detail"] == "Line already exists"

    diagonal = _move(game_id, (0, 0, 0), (1, 1, 0))
    assert diagonal.status_code == 400
    assert diagonal.json()["detail"] == "Points must be adjacent"


def test_rejects_unsupported_grid_size():
    response = client.post("/api/game", json={"gridSize": 7})
    assert response.status_code == 422


def test_missing_game_returns_404():
    assert client.get("/api/game/missing").status_code == 404


def test_ai_replies_after_player_move():
    payload = client.post("/api/game", json={"gridSize": 3, "mode": "ai"}).json()
    assert payload["players"][1]["isAI"] is True

    state = _move(payload["id"], (0, 0, 0), (0, 0, 1)).json()
    assert state["currentPlayer"]["id"] == "player2"
    assert state["aiPending"] is True

    time.sleep(0.01)
    follow_up = client.get(f"/api/game/{payload['id']}").json()
    assert follow_up["aiPending"] is False
    assert follow_up["currentPlayer"]["id"] == "player1"
    assert follow_up["moveLog"][-1]["player"] == "player2"


def test_autoplay_chain_runs_after_completing_move():
    game_id = client.post(
        "/api/game", json={"gridSize": 3, "autoplayChainReactions": True}
    ).json()["id"]
    seeded = client.post(
        f"/api/game/{game_id}/sync",
        json={
            "lines": [
                _line((1, 0, 0), (1, 1, 0), "player2"),
                _line((0, 0, 0), (1, 0, 0), "player1"),
                _line((1, 1, 0), (0, 1, 0), "player2"),
                _line((1, 0, 0), (2, 0, 0), "player1"),
                _line((2, 0, 0), (2, 1, 0), "player2"),
            ]
        },
    )
    assert seeded.status_code == 200

    state = _move(game_id, (0, 1, 0), (0, 0, 0)).json()

    assert len(state["lines"]) == 7
    assert [entry["automated"] for entry in state["moveLog"]] == [False, True]
    move_event, complete_event = state["chainEvents"]
    assert move_event["type"] == "move"
    assert move_event["isAutomated"] is True
    assert move_event["player"] == "player1"
    assert move_event["move"]["player"] == {"id": "player1"}
    assert {"start", "end"} <= set(move_event["move"])
    assert complete_event["type"] == "complete"
    assert complete_event["totalMoves"] == 1
    assert complete_event["squaresCompleted"] == 1
    assert complete_event["player"] == "player1"
    assert "timestamp" in complete_event
    assert state["players"][0]["squareCount"] == 2
    assert state["currentPlayer"]["id"] == "player2"


def test_sync_endpoint_keeps_slot_ids_and_rejects_bad_state():
    game_id = client.post("/api/game", json={"gridSize": 3}).json()["id"]
    response = client.post(
        f"/api/game/{game_id}/sync",
        json={
            "players": [
                {"id": "sock-a", "name": "Alice", "color": "#111111", "score": 0},
                {"id": "sock-b", "name": "Bob", "color": "#222222", "score": 0},
            ],
            "currentPlayer": {"id": "sock-b"},
        },
    )
    assert response.status_code == 200
    state = response.json()
    assert [p["id"] for p in state["players"]] == ["player1", "player2"]
    assert [p["name"] for p in state["players"]] == ["Alice", "Bob"]
    assert state["currentPlayer"]["id"] == "player2"

    bad = client.post(f"/api/game/{game_id}/sync", json={"turn": -1})
    assert bad.status_code == 400
    assert client.get(f"/api/game/{game_id}").json()["turn"] == 0


def test_online_join_assigns_slots():
    game_id = client.post("/api/game", json={"gridSize": 3, "mode": "online"}).json()["id"]

    first = client.post(f"/api/game/{game_id}/join", json={"connectionId": "sock-a", "name": "Alice"})
    assert first.status_code == 200
    assert first.json()["slotId"] == "player1"
    assert first.json()["players"][0]["id"] == "sock-a"

    again = client.post(f"/api/game/{game_id}/join", json={"connectionId": "sock-a"})
    assert again.json()["slotId"] == "player1"

    second = client.post(f"/api/game/{game_id}/join", json={"connectionId": "sock-b"})
    assert second.json()["slotId"] == "player2"

    full = client.post(f"/api/game/{game_id}/join", json={"connectionId": "sock-c"})
    assert full.status_code == 409


def test_join_requires_online_match():
    game_id = client.post("/api/game", json={"gridSize": 3}).json()["id"]
    response = client.post(f"/api/game/{game_id}/join", json={"connectionId": "sock-a"})
    assert response.status_code == 400


def test_reset_clears_board():
    game_id = client.post("/api/game", json={"gridSize": 3}).json()["id"]
    _move(game_id, (0, 0, 0), (1, 0, 0))
    state = client.post(f"/api/game/{game_id}/reset").json()
    assert state["lines"] == []
    assert state["moveLog"] == []
    assert state["turn"] == 0
