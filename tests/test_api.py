import pytest
from fastapi.testclient import TestClient

from core.config_manager import SystemConfig
from core.session import RhythmSession, set_session
from core.storage import Storage
from web.backend.app import create_app


@pytest.fixture
def client(tmp_path):
    set_session(RhythmSession.open(storage=Storage(tmp_path), cfg=SystemConfig(IDLE_CHECK_MINUTES=0)))
    # no `with` block: the lifespan (ticker + global session) stays out of the tests
    yield TestClient(create_app())
    set_session(None)


def _create(client, title, **extra):
    response = client.post("/api/v1/tasks", json={"title": title, **extra})
    assert response.status_code == 200
    return response.json()


def test_health(client):
    assert client.get("/health").json()["status"] == "ok"


def test_create_start_done_and_undo(client):
    task = _create(client, "Write", estimate_hours=0.5, tags=["#deep"])
    assert task["status"] == "idle"
    assert task["tags"] == ["deep"]

    started = client.post(f"/api/v1/tasks/{task['id']}/start").json()
    assert started["status"] == "running"
    assert started["section"] == "active"

    done = client.post(f"/api/v1/tasks/{task['id']}/done").json()
    assert done["section"] == "done"

    undone = client.post("/api/v1/undo").json()
    assert undone == {"action": "done", "entity_id": task["id"], "section": "active", "index": 0}

    state = client.get("/api/v1/state").json()
    assert [e["status"] for e in state["active"]] == ["running"]
    assert state["undo_available"] == 0


def test_mode_lock_returns_409(client):
    task = _create(client, "Write")
    client.post(f"/api/v1/tasks/{task['id']}/start")

    change = client.post("/api/v1/mode", json={"mode": "lunch"}).json()
    assert change["paused"] == [task["id"]]

    response = client.post(f"/api/v1/tasks/{task['id']}/start")
    assert response.status_code == 409
    assert response.json()["detail"]["kind"] == "mode_locked"

    resumed = client.post("/api/v1/mode", json={"mode": "working"}).json()
    assert resumed["resumed"] == [task["id"]]


def test_error_statuses(client):
    assert client.post("/api/v1/mode", json={"mode": "nap"}).status_code == 400
    assert client.get("/api/v1/tasks/missing").status_code == 404
    assert client.post("/api/v1/undo").status_code == 409
    assert client.post("/api/v1/tasks", json={"title": "  "}).status_code == 400
    assert client.post("/api/v1/tasks/swap", json={"i": 0, "j": 1}).status_code == 400

    task = _create(client, "Write")
    assert client.post(f"/api/v1/tasks/{task['id']}/fly").status_code == 404
    client.post(f"/api/v1/tasks/{task['id']}/done")
    assert client.post(f"/api/v1/tasks/{task['id']}/start").status_code == 409


def test_subtasks_select_and_move(client):
    parent = _create(client, "Write")
    first = client.post(f"/api/v1/tasks/{parent['id']}/subtasks", json={"title": "Draft"}).json()
    client.post(f"/api/v1/tasks/{parent['id']}/subtasks", json={"title": "Edit"})
    assert first["parent_id"] == parent["id"]

    assert client.get("/api/v1/tasks/select/1").json()["id"] == first["id"]

    client.post(f"/api/v1/tasks/{first['id']}/move", json={"direction": "down"})
    titles = [s["title"] for s in client.get(f"/api/v1/tasks/{parent['id']}").json()["subtasks"]]
    assert titles == ["Edit", "Draft"]


def test_estimate_edit_and_elapsed(client):
    task = _create(client, "Write", estimate_hours=1)

    assert client.post(f"/api/v1/tasks/{task['id']}/estimate", json={"steps": 2}).json()["estimate_hours"] == 1.5
    assert client.post(f"/api/v1/tasks/{task['id']}/estimate", json={"hours": 2}).json()["estimate_hours"] == 2.0
    assert client.post(f"/api/v1/tasks/{task['id']}/estimate", json={}).status_code == 400

    corrected = client.post(f"/api/v1/tasks/{task['id']}/elapsed", json={"hours": 0.25}).json()
    assert corrected["elapsed_hours"] == 0.25

    edited = client.patch(f"/api/v1/tasks/{task['id']}", json={"title": "Rewrite", "notes": "n"}).json()
    assert edited["title"] == "Rewrite"
    assert edited["notes"] == "n"


def test_delete_postpone_and_planner(client):
    keep = _create(client, "Keep", estimate_hours=0.5)
    later = _create(client, "Later", estimate_hours=0.5)
    gone = _create(client, "Gone")

    assert client.delete(f"/api/v1/tasks/{gone['id']}").json()["status"] == "deleted"
    assert client.post(f"/api/v1/tasks/{later['id']}/postpone").json()["section"] == "postponed"

    layout = client.get("/api/v1/planner").json()
    assert len(layout["slots"]) == 60
    assert [b["entity_id"] for b in layout["blocks"]] == [keep["id"]]
    assert layout["blocks"][0]["start"] == "09:00"


def test_report_is_plain_markdown(client):
    _create(client, "Write")
    day = client.get("/api/v1/state").json()["date"]

    response = client.get(f"/api/v1/reports/{day}")

    assert response.status_code == 200
    assert response.text.startswith(f"# Daily Report {day}")


def test_remaining_hours_in_state(client):
    task = _create(client, "Write", estimate_hours=1.5)
    assert task["remaining_hours"] == 1.5

    state = client.get("/api/v1/state").json()
    assert state["totals"]["remaining_hours"] == 1.5


def test_journal_round_trip(client):
    day = client.get("/api/v1/state").json()["date"]
    assert client.get(f"/api/v1/journal/{day}").json()["text"] == ""

    saved = client.put(f"/api/v1/journal/{day}", json={"text": "Calm day."})
    assert saved.status_code == 200
    assert client.get(f"/api/v1/journal/{day}").json() == {"date": day, "text": "Calm day."}

    future = client.put("/api/v1/journal/2999-01-01", json={"text": "?"})
    assert future.status_code == 400
    assert future.json()["detail"]["kind"] == "invalid_input"
