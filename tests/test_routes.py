"""HTTP surface, with the calendar swapped for an in-memory one."""

import pytest
from fastapi.testclient import TestClient

from conftest import at, busy

from planner.app import create_app
from planner.gcal import GatewayError, InMemoryCalendarGateway

TASK = {"id": "t1", "title": "Write report", "total_duration_minutes": 60}


@pytest.fixture
def client():
    return TestClient(create_app())


@pytest.fixture
def calendar(monkeypatch):
    gw = InMemoryCalendarGateway([busy(at(2, 12), at(2, 13))])
    monkeypatch.setattr("planner.routes.gateway_for_request", lambda request: gw)
    return gw


class TestHealth:

    def test_health(self, client):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json()["ok"] is True


class TestSchedule:

    def test_requires_google_session(self, client):
        resp = client.post("/api/schedule", json={"task": TASK})
        assert resp.status_code == 401

    def test_dry_run_books_nothing(self, client, calendar):
        resp = client.post("/api/schedule", json={"task": TASK, "dry_run": True})
        assert resp.status_code == 200
        body = resp.json()
        assert body["allocation"]["kind"] == "single"
        assert body["allocation"]["block"]["title"] == "Write report"
        assert body["booking"] is None
        assert calendar.events == {}

    def test_books_the_allocation(self, client, calendar):
        resp = client.post("/api/schedule", json={"task": TASK})
        body = resp.json()
        assert body["booking"]["partial"] is False
        assert len(body["booking"]["created"]) == 1
        assert len(calendar.events) == 1

    def test_failure_is_data(self, client, calendar):
        task = dict(TASK, deadline="2020-01-01T10:00:00")
        resp = client.post("/api/schedule", json={"task": task})
        assert resp.status_code == 200
        assert resp.json()["allocation"]["code"] == "deadline_passed"
        assert resp.json()["booking"] is None

    def test_gateway_error_is_bad_gateway(self, client, monkeypatch):
        class Broken(InMemoryCalendarGateway):
            def get_busy_intervals(self, window):
                raise GatewayError("calendar down")

        monkeypatch.setattr("planner.routes.gateway_for_request",
                            lambda request: Broken())
        resp = client.post("/api/schedule", json={"task": TASK})
        assert resp.status_code == 502

    def test_invalid_override_rejected(self, client, calendar):
        resp = client.post("/api/schedule", json={"task": TASK, "duration_override": 0})
        assert resp.status_code == 422

    def test_remaining_with_nothing_left(self, client, calendar):
        task = dict(TASK, completion={"time_spent_minutes": 60})
        resp = client.post("/api/schedule/remaining", json={"task": task})
        assert resp.status_code == 200
        assert resp.json()["allocation"]["code"] == "nothing_remaining"


class TestFreeIntervals:

    def test_lists_free_time(self, client, calendar):
        resp = client.post("/api/schedule/free-intervals", json={
            "start": "2026-03-02T09:00:00",
            "end": "2026-03-02T17:00:00",
            "working_hours": {"morning": {"start": "09:00", "end": "12:00"},
                              "afternoon": {"start": "13:00", "end": "17:00"}},
        })
        assert resp.status_code == 200
        body = resp.json()
        assert body["total_minutes"] == 420
        assert [i["start"] for i in body["items"]] == [
            "2026-03-02T09:00:00+01:00", "2026-03-02T13:00:00+01:00"]

    def test_reversed_range(self, client, calendar):
        resp = client.post("/api/schedule/free-intervals", json={
            "start": "2026-03-02T17:00:00", "end": "2026-03-02T09:00:00"})
        assert resp.status_code == 400


class TestTaskRemaining:

    def test_remaining_and_progress(self, client):
        task = dict(TASK, total_duration_minutes=120,
                    completion={"time_spent_minutes": 30})
        resp = client.post("/api/tasks/remaining", json=task)
        assert resp.json() == {"remaining_minutes": 90, "progress_percent": 25}

    def test_missing_duration_uses_default(self, client):
        resp = client.post("/api/tasks/remaining", json={"id": "t2", "title": "Call"})
        assert resp.json() == {"remaining_minutes": 60, "progress_percent": 0}


OPEN_BLOCK = {"start": "2026-03-02T09:00:00", "end": "2026-03-02T10:00:00"}


class TestProgressUpdates:

    def test_complete_block(self, client):
        task = dict(TASK, total_duration_minutes=120,
                    completion={"blocks": [OPEN_BLOCK]})
        resp = client.post("/api/tasks/complete-block", json={
            "task": task, "block_index": 0, "time_spent_minutes": 45})
        assert resp.status_code == 200
        body = resp.json()
        assert body["task"]["completion"]["blocks"][0]["completed"] is True
        assert body["task"]["completion"]["time_spent_minutes"] == 45
        assert body["remaining_minutes"] == 75
        assert body["progress_percent"] == 38

    def test_complete_block_bad_index(self, client):
        task = dict(TASK, completion={"blocks": [OPEN_BLOCK]})
        resp = client.post("/api/tasks/complete-block",
                           json={"task": task, "block_index": 4})
        assert resp.status_code == 400

    def test_complete_block_without_blocks(self, client):
        resp = client.post("/api/tasks/complete-block",
                           json={"task": TASK, "block_index": 0})
        assert resp.status_code == 400

    def test_record_time_spent(self, client):
        task = dict(TASK, completion={"blocks": [OPEN_BLOCK]})
        resp = client.post("/api/tasks/time-spent",
                           json={"task": task, "minutes": 15, "block_index": 0})
        body = resp.json()
        assert body["task"]["completion"]["time_spent_minutes"] == 15
        assert body["task"]["completion"]["blocks"][0]["time_spent_minutes"] == 15
        assert body["remaining_minutes"] == 45
        assert body["progress_percent"] == 25
