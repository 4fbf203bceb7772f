"""API tests through FastAPI's TestClient with a mock-backed orchestrator."""

import pytest
from fastapi.testclient import TestClient

from api.main import app
from api.routes.game import set_orchestrator
from api.routes.game.gameplay import format_sse
from taleweave.agents.storyteller import StorytellerEvent
from taleweave.config import Config
from taleweave.core.orchestrator import TurnOrchestrator

from .conftest import tool_call


@pytest.fixture
def client(package_store, plot_manager, combat_engine, history_store, mock_llm_manager):
    set_orchestrator(TurnOrchestrator(
        package_store=package_store,
        plot_manager=plot_manager,
        combat_engine=combat_engine,
        history_store=history_store,
    ))
    with TestClient(app) as test_client:
        yield test_client
    set_orchestrator(None)


def _sse_events(body: str) -> list[str]:
    return [line.split(": ", 1)[1] for line in body.splitlines() if line.startswith("event: ")]


class TestMeta:
    def test_health(self, client):
        response = client.get("/api/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_providers_without_keys(self, client, monkeypatch):
        monkeypatch.setattr(Config, "get_available_providers", staticmethod(lambda: []))
        assert client.get("/api/providers").json() == {"available": [], "primary": None}


class TestPackages:
    def test_list_and_get(self, client):
        listing = client.get("/api/packages").json()["packages"]
        assert [p["id"] for p in listing] == ["lighthouse"]

        package = client.get("/api/packages/lighthouse").json()
        assert package["title"] == "The Drowned Lighthouse"
        assert package["plot"]["acts"][0]["sandboxLocations"][0]["id"] == "harbor"

    def test_upsert(self, client, sample_package_data):
        sample_package_data.update(id="lighthouse-2", title="Second Light")
        response = client.post("/api/packages", json=sample_package_data)
        assert response.status_code == 200
        assert response.json() == {"id": "lighthouse-2", "title": "Second Light",
                                   "genre": "mystery", "art_style": "ink wash"}
        assert client.get("/api/packages/lighthouse-2").status_code == 200

    def test_invalid_package(self, client):
        assert client.post("/api/packages", json={"title": "no id"}).status_code == 400
        response = client.post("/api/packages", json={"id": "empty", "plot": {"acts": []}})
        assert response.status_code == 400

    def test_delete(self, client):
        assert client.delete("/api/packages/lighthouse").json() == {"status": "deleted", "id": "lighthouse"}
        assert client.get("/api/packages/lighthouse").status_code == 404
        assert client.delete("/api/packages/lighthouse").status_code == 404


class TestTurns:
    def test_sync_opening_then_turn(self, client, mock_provider):
        opening = client.post("/api/game/turn/sync", json={"session_id": "s1", "package_id": "lighthouse"})
        assert opening.status_code == 200
        assert opening.json()["outcome"] == "seeded"
        assert opening.json()["location_id"] == "harbor"

        mock_provider.queue_tool_step(
            tool_call("buildFrame", frame={"type": "full-screen", "narration": "Wind."}),
            tool_call("yieldToPlayer", waitingFor="choice"),
        )
        response = client.post("/api/game/turn/sync", json={
            "session_id": "s1", "package_id": "lighthouse", "player_input": "I wait",
        })
        body = response.json()
        assert body["turn_count"] == 1
        assert body["waiting_for"] == "choice"
        assert body["frames"][0]["narration"] == "Wind."

    def test_sync_unknown_package(self, client):
        response = client.post("/api/game/turn/sync", json={"session_id": "s1", "package_id": "atlantis"})
        assert response.status_code == 404

    def test_sync_upstream_failure(self, client, mock_provider):
        mock_provider.queue_step_error(RuntimeError("provider down"))
        response = client.post("/api/game/turn/sync", json={
            "session_id": "s1", "package_id": "lighthouse", "player_input": "hello",
        })
        assert response.status_code == 502
        assert "provider down" in response.json()["detail"]

    def test_request_validation(self, client):
        response = client.post("/api/game/turn/sync", json={"session_id": "", "package_id": "lighthouse"})
        assert response.status_code == 422

    def test_stream(self, client, mock_provider):
        mock_provider.queue_tool_step(
            tool_call("buildFrame", frame={"type": "full-screen", "narration": "Wind."}),
            tool_call("yieldToPlayer", waitingFor="free-text"),
        )
        response = client.post("/api/game/turn", json={
            "session_id": "s1", "package_id": "lighthouse", "player_input": "I wait",
        })
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        assert response.text.startswith(": connected")
        assert _sse_events(response.text) == [
            "turn_start", "direction", "tool", "frame", "tool", "yield", "turn_end",
        ]

    def test_stream_reports_failure_as_event(self, client, mock_provider):
        mock_provider.queue_step_error(RuntimeError("provider down"))
        response = client.post("/api/game/turn", json={
            "session_id": "s1", "package_id": "lighthouse", "player_input": "hello",
        })
        assert _sse_events(response.text)[-1] == "error"

    def test_stream_unknown_package(self, client):
        response = client.post("/api/game/turn", json={"session_id": "s1", "package_id": "atlantis"})
        assert response.status_code == 404

    def test_format_sse(self):
        text = format_sse(StorytellerEvent("yield", {"waitingFor": "choice"}))
        assert text == 'event: yield\ndata: {"waitingFor": "choice"}\n\n'


class TestSessions:
    def test_state_and_delete(self, client):
        assert client.get("/api/game/state/s1").status_code == 404
        client.post("/api/game/turn/sync", json={"session_id": "s1", "package_id": "lighthouse"})

        state = client.get("/api/game/state/s1").json()
        assert state["state"]["current_location_id"] == "harbor"
        assert state["combat"] is None

        assert client.delete("/api/game/session/s1").json()["status"] == "deleted"
        assert client.delete("/api/game/session/s1").status_code == 404
