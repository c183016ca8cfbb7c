"""
Tests for the FastAPI server.

Each test gets a fresh demo shop through the backend factory and a patched
LLM call on the orchestrator module.
"""

import pytest
from fastapi.testclient import TestClient

from shopfloor import orchestrator
from shopfloor.config import Settings
from shopfloor.server import create_app
from shopfloor.world import build_demo_shop

AUTH = {"Authorization": "Bearer user-token"}

RESPONSE = """{"machining_steps": [
  {"operation": "Face top surface", "machine_id": "M1", "machine_name": "Haas VF-2",
   "tool_id": "T2", "tool_name": "Face Mill", "estimated_time": "10 min", "cost": 20},
  {"operation": "Cut M8 thread", "status": "unservable", "required_tool_type": "Tap",
   "recommendation": "Buy an M8 spiral tap"}
]}"""

STEP_KEYS = {
    "description", "machine_id", "machine_name", "tooling_id", "tool_name", "time", "cost",
    "unservable", "parameter_issue", "inadequate_parameter", "required_parameter",
    "required_machine_type", "required_tool_type", "recommendation",
    "fixture_requirements", "setup_description",
}


@pytest.fixture
def shop():
    return build_demo_shop()


@pytest.fixture
def credentials_seen():
    return []


@pytest.fixture
def client(shop, credentials_seen, monkeypatch):
    monkeypatch.setattr(orchestrator, "call_llm_text", lambda prompt, settings: RESPONSE)

    def factory(settings, credential):
        credentials_seen.append(credential)
        return shop

    app = create_app(Settings(openai_api_key="sk-test"), backend_factory=factory)
    return TestClient(app)


class TestGenerateItinerary:

    def test_success(self, client, credentials_seen):
        resp = client.post("/api/itineraries", json={"partId": "P1"}, headers=AUTH)
        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True

        itinerary = body["itinerary"]
        assert itinerary["part_id"] == "P1"
        assert itinerary["total_cost"] == 20.0
        steps = itinerary["steps"]["steps"]
        assert len(steps) == 2
        assert all(set(step) == STEP_KEYS for step in steps)
        assert steps[0]["description"] == "Face top surface"
        assert steps[0]["tooling_id"] == "T2"
        assert steps[0]["time"] == 10.0
        assert steps[1]["unservable"] is True
        assert steps[1]["tooling_id"] is None
        assert steps[1]["required_tool_type"] == "Tap"
        assert credentials_seen == ["Bearer user-token"]

    def test_snake_case_part_id(self, client):
        resp = client.post("/api/itineraries", json={"part_id": "P1"}, headers=AUTH)
        assert resp.status_code == 200

    def test_missing_authorization(self, client, credentials_seen):
        resp = client.post("/api/itineraries", json={"partId": "P1"})
        assert resp.status_code == 401
        assert resp.json() == {"error": "Authorization header missing"}
        assert credentials_seen == []

    def test_missing_part_id(self, client):
        resp = client.post("/api/itineraries", json={}, headers=AUTH)
        assert resp.status_code == 400
        assert resp.json()["error"] == "Part ID is required"

    def test_malformed_json_body(self, client):
        resp = client.post(
            "/api/itineraries",
            content=b'{"partId": ',
            headers={**AUTH, "Content-Type": "application/json"},
        )
        assert resp.status_code == 400
        assert resp.json()["error"] == "Invalid request body"

    def test_non_object_body(self, client):
        resp = client.post("/api/itineraries", json=["P1"], headers=AUTH)
        assert resp.status_code == 400
        assert resp.json()["error"] == "Invalid request body"

    def test_empty_part_id(self, client):
        resp = client.post("/api/itineraries", json={"partId": ""}, headers=AUTH)
        assert resp.status_code == 400
        assert resp.json()["error"] == "Part ID is required"

    def test_unknown_part(self, client):
        resp = client.post("/api/itineraries", json={"partId": "P404"}, headers=AUTH)
        assert resp.status_code == 404
        assert resp.json()["error"] == "Error fetching part data"

    def test_unparseable_model_output(self, client, monkeypatch, shop):
        monkeypatch.setattr(orchestrator, "call_llm_text", lambda prompt, settings: "Sorry, no JSON today.")
        resp = client.post("/api/itineraries", json={"partId": "P1"}, headers=AUTH)
        assert resp.status_code == 502
        body = resp.json()
        assert body["error"] == "Failed to parse AI response"
        assert body["details"]["aiResponse"] == "Sorry, no JSON today."
        assert shop.fetch_latest("P1") is None

    def test_missing_api_key(self, shop):
        app = create_app(Settings(), backend_factory=lambda settings, credential: shop)
        resp = TestClient(app).post("/api/itineraries", json={"partId": "P1"}, headers=AUTH)
        assert resp.status_code == 500
        assert "OPENAI_API_KEY" in resp.json()["error"]


class TestLatestItinerary:

    def test_none_then_latest(self, client):
        resp = client.get("/api/parts/P1/itinerary", headers=AUTH)
        assert resp.status_code == 200
        assert resp.json() == {"itinerary": None}

        created = client.post("/api/itineraries", json={"partId": "P1"}, headers=AUTH).json()["itinerary"]
        resp = client.get("/api/parts/P1/itinerary", headers=AUTH)
        assert resp.json()["itinerary"]["id"] == created["id"]
        assert resp.json()["itinerary"]["steps"] == created["steps"]

    def test_requires_authorization(self, client):
        resp = client.get("/api/parts/P1/itinerary")
        assert resp.status_code == 401


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}
