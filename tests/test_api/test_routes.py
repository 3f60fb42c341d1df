"""
Tests for adcraft.api
=======================

What's Being Tested:
    - Success envelope shape and request id propagation
    - Error envelope: code → status mapping, fixed technical message,
      localized user message, details only for client errors
    - Request validation (missing fields, unknown agent) → 400
    - The full Maya → David → Zara run over HTTP
    - Health endpoint

Uses FastAPI's TestClient against an app built around a facade with the
mock generation provider.
"""

import pytest
from fastapi.testclient import TestClient

from adcraft.api import create_app
from adcraft.facade import AdCraft


@pytest.fixture
def client(config, mock_provider):
    app = create_app(AdCraft(config, generation_provider=mock_provider))
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client


def _start(client: TestClient) -> str:
    response = client.post("/api/agents/maya/initialize", json={})
    return response.json()["data"]["sessionId"]


def _analyzed(client: TestClient) -> str:
    session_id = _start(client)
    client.post(
        "/api/agents/maya/analyze",
        json={"sessionId": session_id, "description": "Ceramic pour-over coffee set"},
    )
    return session_id


# =============================================================================
# Test: Envelope
# =============================================================================
class TestEnvelope:
    """Tests for the success envelope."""

    def test_initialize(self, client) -> None:
        response = client.post("/api/agents/maya/initialize", json={"locale": "ja"})
        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["data"]["agent"] == "product_intelligence"
        assert body["data"]["status"] == "ready"
        assert body["data"]["locale"] == "ja"
        assert body["timestamp"]
        assert body["requestId"] == response.headers["X-Request-ID"]

    def test_request_id_passthrough(self, client) -> None:
        response = client.post(
            "/api/agents/maya/initialize", json={}, headers={"X-Request-ID": "req_fixed"}
        )
        assert response.headers["X-Request-ID"] == "req_fixed"
        assert response.json()["requestId"] == "req_fixed"

    def test_status(self, client) -> None:
        session_id = _analyzed(client)
        response = client.get("/api/agents/maya/status", params={"sessionId": session_id})
        data = response.json()["data"]
        assert data["persona"] == "Maya"
        assert data["costs"]["total"] == pytest.approx(0.2)
        assert data["details"]["analysis_completed"] is True

    def test_cancel(self, client) -> None:
        session_id = _start(client)
        response = client.post("/api/agents/maya/cancel", json={"sessionId": session_id})
        assert response.json()["data"] == {"sessionId": session_id, "cancelled": 0}


# =============================================================================
# Test: Error Envelope
# =============================================================================
class TestErrors:
    """Tests for error mapping and localization."""

    def test_session_not_found(self, client) -> None:
        response = client.get("/api/agents/maya/status", params={"sessionId": "ghost"})
        assert response.status_code == 404
        error = response.json()["error"]
        assert response.json()["success"] is False
        assert error["code"] == "SESSION_NOT_FOUND"
        assert error["message"] == "Session not found"
        assert error["userMessage"].startswith("We couldn't find your session")
        assert error["details"] == {"session_id": "ghost"}

    def test_japanese_user_message(self, client) -> None:
        response = client.get(
            "/api/agents/maya/status",
            params={"sessionId": "ghost"},
            headers={"Accept-Language": "ja-JP,en;q=0.8"},
        )
        assert response.json()["error"]["userMessage"] == (
            "セッションが見つかりません。最初からやり直してください。"
        )

    def test_locale_query_parameter(self, client) -> None:
        response = client.get(
            "/api/agents/maya/status", params={"sessionId": "ghost", "locale": "ja"}
        )
        assert response.json()["error"]["userMessage"].startswith("セッション")

    def test_missing_field(self, client) -> None:
        response = client.post("/api/agents/maya/chat", json={"sessionId": "s-1"})
        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "VALIDATION_ERROR"
        assert error["details"]["errors"][0]["field"] == "message"

    def test_unknown_agent(self, client) -> None:
        response = client.get("/api/agents/bob/status", params={"sessionId": "s-1"})
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    def test_empty_chat_message(self, client) -> None:
        session_id = _start(client)
        response = client.post(
            "/api/agents/maya/chat", json={"sessionId": session_id, "message": " "}
        )
        assert response.status_code == 400
        assert response.json()["error"]["details"]["field"] == "message"

    def test_wrong_stage(self, client) -> None:
        session_id = _start(client)
        response = client.post("/api/agents/david/initialize", json={"sessionId": session_id})
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "SESSION_INVALID_STATE"

    def test_handoff_validation(self, client) -> None:
        session_id = _start(client)
        response = client.post("/api/agents/maya/handoff", json={"sessionId": session_id})
        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "HANDOFF_VALIDATION_FAILED"
        assert "Product analysis is not complete" in error["details"]["errors"]

    def test_unhandled_error_hides_internals(self, client, monkeypatch) -> None:
        async def explode(session_id):
            raise RuntimeError("db password is hunter2")

        monkeypatch.setattr(client.app.state.adcraft.maya, "status", explode)
        response = client.get("/api/agents/maya/status", params={"sessionId": "s-1"})
        assert response.status_code == 500
        error = response.json()["error"]
        assert error["code"] == "INTERNAL_ERROR"
        assert error["message"] == "Internal server error"
        assert "details" not in error
        assert "hunter2" not in response.text


# =============================================================================
# Test: Full Pipeline over HTTP
# =============================================================================
class TestPipeline:
    """Maya → David → Zara through the API."""

    def test_end_to_end(self, client) -> None:
        session_id = _analyzed(client)
        sid = {"sessionId": session_id}

        handoff = client.post("/api/agents/maya/handoff", json=sid)
        assert handoff.status_code == 200
        assert handoff.json()["data"]["is_valid"] is True

        assert client.post("/api/agents/david/initialize", json=sid).status_code == 200
        client.post(
            "/api/agents/david/select-visual",
            json={**sid, "kind": "style", "choice": "minimalist"},
        )
        asset = client.post(
            "/api/agents/david/generate-asset",
            json={**sid, "prompt": "Hero shot on marble", "quality": "high"},
        )
        assert asset.json()["data"]["asset"]["status"] == "ready"
        assert asset.json()["data"]["cost"] == pytest.approx(0.06)

        assert client.post("/api/agents/david/handoff", json=sid).status_code == 200
        assert client.post("/api/agents/zara/initialize", json=sid).status_code == 200
        client.post("/api/agents/zara/select-narrative", json={**sid, "style": "story-driven"})
        client.post("/api/agents/zara/select-music", json={**sid, "genre": "lo-fi"})

        too_long = client.post("/api/agents/zara/start-production", json={**sid, "duration": 60})
        assert too_long.status_code == 402
        assert too_long.json()["error"]["code"] == "BUDGET_EXCEEDED"

        produced = client.post("/api/agents/zara/start-production", json=sid)
        assert produced.status_code == 200
        assert produced.json()["data"]["production"]["video_url"]

        done = client.post("/api/agents/zara/handoff", json=sid)
        assert done.status_code == 200
        data = done.json()["data"]
        assert data["status"] == "completed"
        assert data["completedStages"] == [
            "product_intelligence",
            "creative_director",
            "video_producer",
        ]
        assert data["costs"]["total"] == pytest.approx(0.2 + 0.06 + 1.5)


# =============================================================================
# Test: Health
# =============================================================================
class TestHealth:
    """Tests for GET /api/health."""

    def test_healthy(self, client) -> None:
        response = client.get("/api/health")
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["healthy"] is True
        assert data["provider"] == "mock"
        assert data["resilience"]["open_circuits"] == []
