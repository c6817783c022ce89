"""
HTTP surface tests for the isolation service.

Drive the FastAPI app end to end through TestClient with the learned model
disabled, checking status codes and the error mapping:
- InvalidState / InvalidPosition -> 400
- NotFound -> 404
"""

import pytest
from fastapi.testclient import TestClient

from isolation.main import create_app


@pytest.fixture
def client(service_config):
    app = create_app(service_config)
    with TestClient(app) as test_client:
        yield test_client


def _new_game(client, player_id="alice"):
    response = client.post("/games", json={"playerId": player_id})
    assert response.status_code == 201
    return response.json()


def _empty_board():
    return [["."] * 7 for _ in range(7)]


class TestServiceEndpoints:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_metrics_exposed(self, client):
        game = _new_game(client)
        client.post(f"/games/{game['id']}/start", json={"row": 0, "col": 0})

        response = client.get("/metrics")
        assert response.status_code == 200
        assert "isolation_moves_total" in response.text


class TestGameFlow:
    def test_create_returns_starting_state(self, client):
        game = _new_game(client)
        assert game["playerId"] == "alice"
        assert game["gamePhase"] == "starting"
        assert game["currentPlayer"] == "human"
        assert game["board"] == _empty_board()

    def test_create_without_body_uses_anonymous_owner(self, client):
        response = client.post("/games")
        assert response.status_code == 201
        assert response.json()["playerId"] == "anonymous"

    def test_full_exchange_and_undo(self, client):
        game_id = _new_game(client)["id"]

        started = client.post(f"/games/{game_id}/start", json={"row": 0, "col": 0}).json()
        assert started["gamePhase"] == "playing"
        assert started["humanPos"] == {"row": 0, "col": 0}
        assert started["softwarePos"] == {"row": 3, "col": 3}

        moves = client.get(f"/games/{game_id}/valid-moves").json()
        assert len(moves["validMoves"]) == 3
        assert moves["currentPlayer"] == "human"

        moved = client.post(f"/games/{game_id}/move", json={"row": 1, "col": 1})
        assert moved.status_code == 200
        assert moved.json()["currentPlayer"] == "software"

        replied = client.post(f"/games/{game_id}/ai-move")
        assert replied.status_code == 200
        body = replied.json()
        assert body["currentPlayer"] == "human"
        assert body["moveHistory"][-1]["player"] == "software"

        history = client.get(f"/games/{game_id}/history").json()
        assert history["totalMoves"] == 3
        assert history["moves"][0]["from"] is None

        undone = client.post(f"/games/{game_id}/undo").json()
        assert undone["board"] == started["board"]
        assert undone["humanPos"] == started["humanPos"]
        assert undone["softwarePos"] == started["softwarePos"]
        assert len(undone["moveHistory"]) == 1

        fetched = client.get(f"/games/{game_id}").json()
        assert fetched["board"] == started["board"]

    def test_admin_lists_active_games(self, client):
        _new_game(client, "alice")
        _new_game(client, "bob")

        response = client.get("/games/admin/active")
        assert response.status_code == 200
        body = response.json()
        assert body["activeGames"] == 2
        assert {g["playerId"] for g in body["games"]} == {"alice", "bob"}


class TestErrorMapping:
    def test_unknown_game_is_404(self, client):
        assert client.get("/games/does-not-exist").status_code == 404
        assert client.post("/games/does-not-exist/ai-move").status_code == 404
        assert client.post("/ai/suggest-move/does-not-exist").status_code == 404

    def test_illegal_move_is_400(self, client):
        game_id = _new_game(client)["id"]
        client.post(f"/games/{game_id}/start", json={"row": 0, "col": 0})

        response = client.post(f"/games/{game_id}/move", json={"row": 5, "col": 5})
        assert response.status_code == 400
        assert "Invalid move" in response.json()["detail"]

    def test_wrong_phase_is_400(self, client):
        game_id = _new_game(client)["id"]
        assert client.post(f"/games/{game_id}/move", json={"row": 0, "col": 0}).status_code == 400
        assert client.post(f"/games/{game_id}/ai-move").status_code == 400
        assert client.post(f"/games/{game_id}/undo").status_code == 400

    def test_out_of_bounds_start_is_400(self, client):
        game_id = _new_game(client)["id"]
        response = client.post(f"/games/{game_id}/start", json={"row": 9, "col": 0})
        assert response.status_code == 400

    def test_action_on_busy_game_is_400(self, client):
        game_id = _new_game(client)["id"]
        client.post(f"/games/{game_id}/start", json={"row": 0, "col": 0})
        client.post(f"/games/{game_id}/move", json={"row": 1, "col": 1})

        store = client.app.state.service.store
        with store.claim(game_id):
            response = client.post(f"/games/{game_id}/ai-move")
        assert response.status_code == 400
        assert "in progress" in response.json()["detail"]

        # Nothing was committed while the game was busy
        assert client.post(f"/games/{game_id}/ai-move").status_code == 200
        history = client.get(f"/games/{game_id}/history").json()
        assert history["totalMoves"] == 3

    def test_starting_twice_is_400(self, client):
        game_id = _new_game(client)["id"]
        client.post(f"/games/{game_id}/start", json={"row": 0, "col": 0})
        response = client.post(f"/games/{game_id}/start", json={"row": 6, "col": 6})
        assert response.status_code == 400


class TestStatsAndAI:
    def test_stats_overview_and_reset(self, client):
        overview = client.get("/stats/overview").json()
        assert overview["games"]["total"] == 0
        assert overview["games"]["winRate"] == "0%"
        assert overview["ai"]["modelLoaded"] is False

        reset = client.post("/stats/reset")
        assert reset.status_code == 200
        assert reset.json()["stats"]["totalGames"] == 0

    def test_evaluate_board(self, client):
        board = _empty_board()
        board[0][0] = "H"
        board[3][3] = "A"

        response = client.post("/ai/evaluate", json={"board": board})
        assert response.status_code == 200
        body = response.json()
        assert body["aiWinProbability"] == pytest.approx(8 / 11)
        assert body["humanWinProbability"] == pytest.approx(3 / 11)
        assert body["modelLoaded"] is False

    def test_evaluate_rejects_wrong_shape(self, client):
        board = [["."] * 6 for _ in range(6)]
        assert client.post("/ai/evaluate", json={"board": board}).status_code == 400

    def test_evaluate_rejects_unknown_cells(self, client):
        board = _empty_board()
        board[0][0] = "X"
        assert client.post("/ai/evaluate", json={"board": board}).status_code == 422

    def test_insights_reflect_placements(self, client):
        game_id = _new_game(client)["id"]
        client.post(f"/games/{game_id}/start", json={"row": 2, "col": 5})

        insights = client.get("/ai/insights").json()
        assert insights["totalExperiences"] == 1
        assert insights["favoriteStartingPositions"][0] == {"pattern": "2,5", "count": 1}

        exported = client.get("/ai/training-data").json()
        assert exported["count"] == 1

    def test_suggest_move_for_human(self, client):
        game_id = _new_game(client)["id"]
        client.post(f"/games/{game_id}/start", json={"row": 0, "col": 0})

        response = client.post(f"/ai/suggest-move/{game_id}")
        assert response.status_code == 200
        body = response.json()
        assert body["player"] == "human"
        assert (body["suggestedMove"]["row"], body["suggestedMove"]["col"]) in {(0, 1), (1, 0), (1, 1)}

    def test_status_and_reset_without_learned_model(self, client):
        status = client.get("/ai/status").json()
        assert status["status"] == "heuristic"
        assert status["model"]["loaded"] is False
        assert status["gameStats"]["winRate"] == "0%"

        reset = client.post("/ai/reset")
        assert reset.status_code == 200
        assert reset.json()["model"]["loaded"] is False

    def test_train_requires_learned_model(self, client):
        payload = {"examples": [{"board": _empty_board(), "label": 0.5}], "epochs": 1}
        assert client.post("/ai/train", json=payload).status_code == 400
