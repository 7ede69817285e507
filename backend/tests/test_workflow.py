from __future__ import annotations

import datetime as dt

from fastapi.testclient import TestClient

from helpers import UTC


def test_healthz(client: TestClient):
    assert client.get("/healthz").json() == {"status": "ok"}


def test_add_queue_complete_flow(client: TestClient, clock):
    resp = client.post("/tasks", json={"priority": 0, "tag": "fix outage"})
    assert resp.status_code == 200
    assert resp.json()["started"] is True
    assert resp.json()["current"] == {"priority": 0, "tag": "fix outage", "rest_time": 0, "active": True}

    clock.advance(minutes=20)
    resp = client.post("/tasks", json={"priority": 2, "tag": "read docs"})
    assert resp.json()["started"] is False
    assert resp.json()["pending_count"] == 1

    pending = client.get("/tasks/pending").json()
    assert [(p["priority"], p["tag"]) for p in pending] == [(2, "read docs")]
    assert client.get("/tasks/pending/suggested").json() == {"priority": 2, "tag": "read docs"}

    resp = client.post("/tasks/complete")
    assert resp.json()["completed"] is True
    assert resp.json()["current"]["active"] is False
    assert client.post("/tasks/complete").json()["completed"] is False

    timeline = client.get("/timeline/today").json()
    assert timeline["day"] == "2024-01-01"
    assert [r["tag"] for r in timeline["records"]] == ["fix outage"]
    assert timeline["total_duration"] == 20 * 60 * 1000

    resp = client.post("/tasks/pending/start-first")
    assert resp.json()["started"]["tag"] == "read docs"
    assert resp.json()["current"]["tag"] == "read docs"
    assert client.get("/tasks/pending/suggested").json() is None


def test_invalid_task_payloads(client: TestClient):
    assert client.post("/tasks", json={"priority": -1, "tag": "x"}).status_code == 422
    assert client.post("/tasks", json={"priority": 1, "tag": "   "}).status_code == 422
    assert client.post("/tasks/start", json={"priority": 1}).status_code == 422
    assert client.get("/tasks/current").json()["active"] is False


def test_pending_entry_endpoints(client: TestClient, clock):
    client.post("/tasks/start", json={"priority": 0, "tag": "urgent"})
    client.post("/tasks", json={"priority": 3, "tag": "inbox"})
    client.post("/tasks", json={"priority": 2, "tag": "report"})
    report, inbox = client.get("/tasks/pending").json()

    resp = client.request("DELETE", "/tasks/pending", json=inbox)
    assert resp.status_code == 204
    assert client.request("DELETE", "/tasks/pending", json=inbox).status_code == 404

    clock.advance(minutes=5)
    resp = client.post("/tasks/pending/start", json=report)
    assert resp.status_code == 200
    assert resp.json()["current"] == {"priority": 2, "tag": "report", "rest_time": 0, "active": True}
    assert client.post("/tasks/pending/start", json=report).status_code == 404


def test_rename_current_task(client: TestClient):
    assert client.patch("/tasks/current", json={"tag": "anything"}).status_code == 409
    client.post("/tasks/start", json={"priority": 1, "tag": "draft"})
    resp = client.patch("/tasks/current", json={"tag": "final"})
    assert resp.status_code == 200
    assert resp.json()["tag"] == "final"


def test_rest_endpoints(client: TestClient, clock):
    assert client.post("/rest/start").status_code == 409
    client.post("/tasks/start", json={"priority": 1, "tag": "focus"})

    resp = client.post("/rest/start")
    assert resp.status_code == 200
    assert resp.json()["resting"] is True
    assert resp.json()["remaining_ms"] == 300_000

    clock.advance(seconds=90)
    assert client.get("/rest").json()["remaining_ms"] == 210_000
    resp = client.post("/rest/stop")
    assert resp.json()["credited_ms"] == 90_000
    assert resp.json()["status"]["rest_time"] == 90_000
    assert resp.json()["status"]["resting"] is False


def test_snapshot_and_day_timeline(client: TestClient, clock):
    client.post("/tasks/start", json={"priority": 1, "tag": "late shift"})
    clock.set(dt.datetime(2024, 1, 2, 1, 0, tzinfo=UTC))

    snapshot = client.get("/snapshot").json()
    assert snapshot["day"] == "2024-01-02"
    assert snapshot["current"]["tag"] == "late shift"
    assert snapshot["pending"] == []
    assert snapshot["suggested"] is None
    assert snapshot["rest"]["resting"] is False

    previous = client.get("/timeline/2024-01-01").json()
    assert previous["total_duration"] == 15 * 60 * 60 * 1000
    today = client.get("/timeline/today").json()
    assert today["total_duration"] == 60 * 60 * 1000


def test_export_endpoint(client: TestClient, clock, app_settings):
    resp = client.post("/exports", json={"day": "2024-01-01", "format": "csv"})
    assert resp.status_code == 409
    assert resp.json()["detail"] == "empty"

    client.post("/tasks/start", json={"priority": 1, "tag": "focus"})
    clock.advance(minutes=30)
    client.post("/tasks/complete")
    resp = client.post("/exports", json={"day": "2024-01-01", "format": "csv"})
    assert resp.status_code == 201
    body = resp.json()
    assert body["path"] == str(app_settings.export_dir / "timetagger_2024-01-01.csv")
    assert len(body["checksum"]) == 64

    assert client.post("/exports", json={"day": "2024-01-01", "format": "docx"}).status_code == 422
