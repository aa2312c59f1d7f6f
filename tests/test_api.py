"""Tests for the control API."""
import asyncio

import pytest
from fastapi.testclient import TestClient

from carrier_scraper.api import main as api
from carrier_scraper.config import config
from carrier_scraper.jobs import metrics_exporter
from carrier_scraper.parse.models import PolicyRecord
from carrier_scraper.store.sqlite_store import SqliteStore

from tests.fakes import FakeProvider


@pytest.fixture
def api_store(tmp_path):
    store = SqliteStore(tmp_path / "api.db")
    asyncio.run(store.initialize())
    return store


@pytest.fixture
def client(api_store, monkeypatch):
    monkeypatch.setattr(config, "API_KEY", None)
    provider = FakeProvider()
    api.app.dependency_overrides[api.get_store] = lambda: api_store
    api.app.dependency_overrides[api.get_provider] = lambda: provider
    yield TestClient(api.app)
    api.app.dependency_overrides.clear()


def start(client):
    response = client.post("/sessions/start", json={"job_name": "June book", "created_by": "ops@example.com"})
    assert response.status_code == 200
    return response.json()


def test_health(client):
    body = client.get("/health").json()
    assert body["status"] == "ok"
    assert body["store_connected"] is True


def test_start_and_confirm(client):
    started = start(client)
    assert started["status"] == "waiting_for_login"
    assert started["browser_url"] == "https://remote.example/browser"

    response = client.post("/sessions/confirm-ready", json={"session_id": started["session_id"]})
    assert response.status_code == 200
    assert response.json()["status"] == "ready"

    # Repeating the confirmation is harmless
    response = client.post("/sessions/confirm-ready", json={"session_id": started["session_id"]})
    assert response.status_code == 200


def test_start_provisioning_failure(client):
    api.app.dependency_overrides[api.get_provider] = lambda: FakeProvider(fail_times=1)
    response = client.post("/sessions/start", json={"job_name": "June book"})
    assert response.status_code == 502
    assert "allocation 1 refused" in response.json()["error"]


def test_start_blank_job_name(client):
    response = client.post("/sessions/start", json={"job_name": " "})
    assert response.status_code == 400
    assert "error" in response.json()


def test_scrape_requires_ready(client):
    started = start(client)
    response = client.post("/sessions/scrape", json={"session_id": started["session_id"]})
    assert response.status_code == 400
    assert "waiting_for_login" in response.json()["error"]

    client.post("/sessions/confirm-ready", json={"session_id": started["session_id"]})
    response = client.post("/sessions/scrape", json={"session_id": started["session_id"]})
    assert response.status_code == 200
    assert response.json()["success"] is True


def test_stop_then_confirm_conflicts(client):
    started = start(client)
    response = client.post(f"/sessions/{started['session_id']}/stop")
    assert response.status_code == 200
    assert response.json()["status"] == "failed"
    assert response.json()["error_message"] == "Stopped by user"

    response = client.post("/sessions/confirm-ready", json={"session_id": started["session_id"]})
    assert response.status_code == 409
    assert "failed" in response.json()["error"]


def test_unknown_session(client):
    response = client.get("/sessions/does-not-exist")
    assert response.status_code == 404
    assert response.json() == {"error": "Session does-not-exist not found"}


def test_session_status_with_job(client):
    started = start(client)
    body = client.get(f"/sessions/{started['session_id']}").json()
    assert body["session"]["id"] == started["session_id"]
    assert body["job"]["id"] == started["job_id"]
    assert body["job"]["created_by"] == "ops@example.com"

    listing = client.get("/sessions", params={"limit": 5}).json()
    assert [s["id"] for s in listing["sessions"]] == [started["session_id"]]


def test_policies_and_export(client, api_store):
    started = start(client)
    asyncio.run(api_store.insert_policies(
        started["job_id"],
        [PolicyRecord(policy_number="1001", premium="45.10"), PolicyRecord(policy_number="1002")],
    ))

    body = client.get(f"/jobs/{started['job_id']}/policies").json()
    assert body["count"] == 2

    response = client.get(f"/jobs/{started['job_id']}/export", params={"format": "csv"})
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    lines = response.text.splitlines()
    assert lines[0].startswith("policy_number,applicant_name")
    assert lines[1].startswith("1001,")

    response = client.get(f"/jobs/{started['job_id']}/export", params={"format": "json"})
    assert [row["policy_number"] for row in response.json()] == ["1001", "1002"]

    assert client.get(f"/jobs/{started['job_id']}/export", params={"format": "xml"}).status_code == 400
    assert client.get("/jobs/missing/export").status_code == 404


def test_api_key_required(client, monkeypatch):
    monkeypatch.setattr(config, "API_KEY", "k-123")
    assert client.get("/sessions").status_code == 403
    assert client.get("/sessions", headers={"X-API-KEY": "k-123"}).status_code == 200
    # Health stays open
    assert client.get("/health").status_code == 200


def test_metrics_endpoint(client, tmp_path, monkeypatch):
    path = tmp_path / "metrics.jsonl"
    monkeypatch.setattr(metrics_exporter, "METRICS_FILE", path)
    assert client.get("/metrics").json() == {"error": "No metrics available"}

    path.write_text('{"run_id": "session-1", "current_page": 1}\n\n{"run_id": "session-1", "current_page": 2}\n')
    body = client.get("/metrics").json()
    assert [m["current_page"] for m in body["metrics"]] == [1, 2]
