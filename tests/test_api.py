"""
Tests for the REST API routes.

Uses FastAPI TestClient against a real TaskStore on a temporary file.
"""

import sys
from datetime import date, datetime
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import pytest
from fastapi.testclient import TestClient

from api.app import create_app
from scheduler.due_scheduler import DueScheduler
from store.task_store import TaskStore


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

class _NullTimer:
    def __init__(self, interval, function, args=None, kwargs=None):
        self.daemon = False

    def start(self):
        pass

    def cancel(self):
        pass


def _make_store(path) -> TaskStore:
    scheduler = DueScheduler(timer_factory=_NullTimer, clock=lambda: datetime(2025, 6, 10, 8, 0))
    return TaskStore(
        path, scheduler, watch=False, today=lambda: date(2025, 6, 10), notification_time="09:00"
    )


@pytest.fixture
def task_file(tmp_path) -> Path:
    path = tmp_path / "tasks.md"
    path.write_text(
        "## Inbox\n"
        "- [ ] Buy milk\n"
        "  - due: 2025-06-12\n"
        "- [ ] Eggs\n"
        "- [x] Call mom\n",
        encoding="utf-8",
    )
    return path


@pytest.fixture
def client(task_file):
    return TestClient(create_app(_make_store(task_file)))


@pytest.fixture
def unconfigured_client():
    return TestClient(create_app(_make_store(None)))


def _titles(body: dict, section: str = "Inbox") -> list:
    for s in body["sections"]:
        if s["name"] == section:
            return [t["title"] for t in s["tasks"]]
    raise AssertionError(f"section {section} missing")


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

class TestReadRoutes:
    def test_get_doc(self, client):
        resp = client.get("/api/doc")
        assert resp.status_code == 200
        assert _titles(resp.json()) == ["Buy milk", "Eggs", "Call mom"]

    def test_list_tasks_open(self, client):
        resp = client.get("/api/sections/Inbox/tasks")
        assert resp.status_code == 200
        assert [t["title"] for t in resp.json()["tasks"]] == ["Buy milk", "Eggs"]

    def test_list_tasks_done(self, client):
        resp = client.get("/api/sections/Inbox/tasks", params={"filter": "done"})
        assert [t["title"] for t in resp.json()["tasks"]] == ["Call mom"]

    def test_list_tasks_bad_filter(self, client):
        resp = client.get("/api/sections/Inbox/tasks", params={"filter": "soon"})
        assert resp.status_code == 400

    def test_status(self, client, task_file):
        resp = client.get("/api/status")
        assert resp.status_code == 200
        assert resp.json()["markdown_path"] == str(task_file)
        assert resp.json()["tasks"] == 3

    def test_unconfigured_doc_is_empty(self, unconfigured_client):
        assert unconfigured_client.get("/api/doc").json() == {"sections": []}


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------

class TestWriteRoutes:
    def test_add_section(self, client, task_file):
        resp = client.post("/api/sections", json={"name": "Work"})
        assert resp.status_code == 201
        assert [s["name"] for s in resp.json()["sections"]] == ["Inbox", "Work"]
        assert "## Work\n" in task_file.read_text(encoding="utf-8")

    def test_add_task(self, client):
        resp = client.post("/api/tasks", json={"section": "Inbox", "title": "Bread"})
        assert resp.status_code == 201
        assert _titles(resp.json())[-1] == "Bread"

    def test_toggle(self, client, task_file):
        resp = client.post("/api/tasks/toggle", json={"section": "Inbox", "task_id": "Inbox::1"})
        assert resp.status_code == 200
        assert "- [x] Eggs\n" in task_file.read_text(encoding="utf-8")

    def test_update(self, client):
        resp = client.patch(
            "/api/tasks",
            json={"section": "Inbox", "task_id": "Inbox::0", "priority": "P0", "due": ""},
        )
        assert resp.status_code == 200
        milk = resp.json()["sections"][0]["tasks"][0]
        assert milk["priority"] == "P0"
        assert milk["due"] is None

    def test_update_invalid_is_400(self, client):
        resp = client.patch(
            "/api/tasks", json={"section": "Inbox", "task_id": "Inbox::0", "due": "June 1st"}
        )
        assert resp.status_code == 400
        assert "due" in resp.json()["detail"]

    def test_reorder(self, client):
        resp = client.post(
            "/api/tasks/reorder", json={"section": "Inbox", "from_index": 2, "to_index": 0}
        )
        assert resp.status_code == 200
        assert _titles(resp.json()) == ["Call mom", "Buy milk", "Eggs"]

    def test_reorder_out_of_range_is_noop(self, client):
        resp = client.post(
            "/api/tasks/reorder", json={"section": "Inbox", "from_index": 0, "to_index": 9}
        )
        assert resp.status_code == 200
        assert _titles(resp.json()) == ["Buy milk", "Eggs", "Call mom"]

    def test_missing_body_field_is_422(self, client):
        resp = client.post("/api/tasks", json={"section": "Inbox"})
        assert resp.status_code == 422

    def test_unconfigured_write_is_409(self, unconfigured_client):
        resp = unconfigured_client.post("/api/sections", json={"name": "Work"})
        assert resp.status_code == 409

    def test_multiline_title_is_400(self, client, task_file):
        resp = client.post("/api/tasks", json={"section": "Inbox", "title": "x\n## Injected"})
        assert resp.status_code == 400
        assert "Injected" not in task_file.read_text(encoding="utf-8")


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

class TestSettingsRoute:
    def test_switch_file(self, client, tmp_path):
        other = tmp_path / "other.md"
        other.write_text("## Errands\n- [ ] Post office\n", encoding="utf-8")
        resp = client.put("/api/settings", json={"markdown_path": str(other)})
        assert resp.status_code == 200
        assert resp.json()["markdown_path"] == str(other)
        assert [s["name"] for s in client.get("/api/doc").json()["sections"]] == ["Errands"]

    def test_notification_settings(self, client):
        resp = client.put(
            "/api/settings", json={"notifications_enabled": False, "notification_time": "07:15"}
        )
        assert resp.status_code == 200
        body = resp.json()
        assert body["notifications_enabled"] is False
        assert body["notification_time"] == "07:15"
        assert body["armed_timers"] == 0

    def test_bad_time_is_400(self, client):
        resp = client.put("/api/settings", json={"notification_time": "soon"})
        assert resp.status_code == 400

    def test_configures_unconfigured_store(self, unconfigured_client, task_file):
        resp = unconfigured_client.put("/api/settings", json={"markdown_path": str(task_file)})
        assert resp.status_code == 200
        add = unconfigured_client.post("/api/tasks", json={"section": "Inbox", "title": "Bread"})
        assert add.status_code == 201
