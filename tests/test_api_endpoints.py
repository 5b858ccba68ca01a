"""Integration tests for API endpoints.

These tests verify API endpoints work correctly end-to-end.
"""

from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Query


GRANT_PAYLOAD = {
    "title": "Grant decision",
    "expected_date": "2025-03-15",
    "urgency": "high",
    "outcomes": [
        {"label": "Grant approved", "type": "success", "action": "activate"},
        {"label": "Decision delayed", "type": "delayed", "action": "postpone", "postpone_days": 14},
        {"label": "Grant rejected", "type": "failed", "action": "switch_fallback"},
    ],
    "fallback_postpone_days": 30,
}


def _create_conditional(test_client: TestClient, **overrides) -> dict:
    response = test_client.post("/conditionals", json={**GRANT_PAYLOAD, **overrides})
    assert response.status_code == 201
    return response.json()["conditional"]


def _create_task(test_client: TestClient, **fields) -> dict:
    payload = {"title": "Buy equipment", "scope": "day", "scope_key": "2025-03-10", **fields}
    response = test_client.post("/tasks", json=payload)
    assert response.status_code == 201
    return response.json()["task"]


def _outcome_id(conditional: dict, action: str) -> str:
    return next(o["id"] for o in conditional["outcomes"] if o["action"] == action)


class TestHealth:

    def test_health(self, test_client):
        response = test_client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"


class TestConditionalEndpoints:
    """Test conditional CRUD API endpoints."""

    def test_create_conditional(self, test_client):
        conditional = _create_conditional(test_client)

        assert conditional["status"] == "pending"
        assert conditional["urgency"] == "high"
        assert conditional["expected_date"] == "2025-03-15"
        assert all(o["id"] for o in conditional["outcomes"])
        assert len({o["id"] for o in conditional["outcomes"]}) == 3

    def test_create_without_outcomes_rejected(self, test_client):
        response = test_client.post("/conditionals", json={**GRANT_PAYLOAD, "outcomes": []})
        assert response.status_code == 422

    def test_create_with_bad_date_rejected(self, test_client):
        response = test_client.post("/conditionals", json={**GRANT_PAYLOAD, "expected_date": "next week"})
        assert response.status_code == 422

    def test_create_with_unknown_fallback(self, test_client):
        response = test_client.post("/conditionals", json={**GRANT_PAYLOAD, "fallback_conditional_id": "missing"})
        assert response.status_code == 400
        assert response.json()["error"] == "InvalidFallbackError"

    def test_get_conditional(self, test_client):
        created = _create_conditional(test_client)

        response = test_client.get(f"/conditionals/{created['id']}")
        assert response.status_code == 200
        assert response.json()["conditional"]["title"] == "Grant decision"

    def test_get_missing_conditional(self, test_client):
        response = test_client.get("/conditionals/missing")
        assert response.status_code == 404
        assert response.json()["error"] == "ConditionalNotFoundError"

    def test_list_conditionals_by_status(self, test_client):
        first = _create_conditional(test_client)
        _create_conditional(test_client, title="Visa decision")
        test_client.post(
            f"/conditionals/{first['id']}/resolve", json={"outcome_id": _outcome_id(first, "activate")}
        )

        everything = test_client.get("/conditionals").json()
        pending = test_client.get("/conditionals", params={"status": "pending"}).json()

        assert everything["count"] == 2
        assert [c["title"] for c in pending["conditionals"]] == ["Visa decision"]

    def test_update_conditional(self, test_client):
        created = _create_conditional(test_client)

        response = test_client.put(
            f"/conditionals/{created['id']}",
            json={"expected_date": "2025-04-01", "urgency": "critical"},
        )
        assert response.status_code == 200
        updated = response.json()["conditional"]
        assert updated["expected_date"] == "2025-04-01"
        assert updated["urgency"] == "critical"
        assert updated["title"] == "Grant decision"
        assert updated["outcomes"] == created["outcomes"]

    def test_update_with_null_outcomes_rejected(self, test_client):
        created = _create_conditional(test_client)

        response = test_client.put(f"/conditionals/{created['id']}", json={"outcomes": None})
        assert response.status_code == 400
        assert response.json()["error"] == "ValidationError"
        assert test_client.get(f"/conditionals/{created['id']}").json()["conditional"]["outcomes"] == created["outcomes"]

    def test_update_resolved_conditional_conflicts(self, test_client):
        created = _create_conditional(test_client)
        test_client.post(
            f"/conditionals/{created['id']}/resolve", json={"outcome_id": _outcome_id(created, "activate")}
        )

        response = test_client.put(f"/conditionals/{created['id']}", json={"title": "Renamed"})
        assert response.status_code == 409


class TestResolveEndpoint:
    """Test resolving conditionals over HTTP."""

    def test_activate(self, test_client):
        conditional = _create_conditional(test_client)
        task = _create_task(test_client, blocked_by_conditional_id=conditional["id"])
        assert task["status"] == "blocked"

        response = test_client.post(
            f"/conditionals/{conditional['id']}/resolve",
            json={"outcome_id": _outcome_id(conditional, "activate")},
        )
        assert response.status_code == 200
        assert response.json() == {"updated_task_count": 1, "switched_to_fallback_id": None}

        released = test_client.get(f"/tasks/{task['id']}").json()["task"]
        assert released["status"] == "pending"
        assert released["blocked_by_conditional_id"] is None

        resolved = test_client.get(f"/conditionals/{conditional['id']}").json()["conditional"]
        assert resolved["status"] == "resolved"
        assert resolved["selected_outcome_id"] == _outcome_id(conditional, "activate")

    def test_postpone(self, test_client):
        conditional = _create_conditional(test_client)
        task = _create_task(test_client, blocked_by_conditional_id=conditional["id"])

        test_client.post(
            f"/conditionals/{conditional['id']}/resolve",
            json={"outcome_id": _outcome_id(conditional, "postpone")},
        )

        moved = test_client.get(f"/tasks/{task['id']}").json()["task"]
        assert moved["scope_key"] == "2025-03-24"
        assert moved["original_scheduled_date"] == "2025-03-10"
        assert moved["status"] == "blocked"

    def test_switch_to_fallback(self, test_client):
        backup = _create_conditional(test_client, title="Backup grant")
        primary = _create_conditional(test_client, fallback_conditional_id=backup["id"])
        task = _create_task(test_client, blocked_by_conditional_id=primary["id"])

        response = test_client.post(
            f"/conditionals/{primary['id']}/resolve",
            json={"outcome_id": _outcome_id(primary, "switch_fallback")},
        )
        assert response.json() == {"updated_task_count": 1, "switched_to_fallback_id": backup["id"]}

        waiting = test_client.get(f"/conditionals/{backup['id']}/blocked-tasks").json()
        assert [t["id"] for t in waiting["tasks"]] == [task["id"]]
        assert test_client.get(f"/conditionals/{primary['id']}").json()["conditional"]["status"] == "failed"

    def test_second_resolution_conflicts(self, test_client):
        conditional = _create_conditional(test_client)
        outcome_id = _outcome_id(conditional, "activate")

        assert test_client.post(
            f"/conditionals/{conditional['id']}/resolve", json={"outcome_id": outcome_id}
        ).status_code == 200
        response = test_client.post(f"/conditionals/{conditional['id']}/resolve", json={"outcome_id": outcome_id})
        assert response.status_code == 409
        assert response.json()["error"] == "AlreadyResolvedError"

    def test_unknown_outcome(self, test_client):
        conditional = _create_conditional(test_client)

        response = test_client.post(f"/conditionals/{conditional['id']}/resolve", json={"outcome_id": "nope"})
        assert response.status_code == 400
        assert response.json()["error"] == "OutcomeNotFoundError"

    def test_missing_conditional(self, test_client):
        response = test_client.post("/conditionals/missing/resolve", json={"outcome_id": "x"})
        assert response.status_code == 404


class TestDeleteConditionalEndpoint:

    def test_delete_releases_tasks(self, test_client):
        conditional = _create_conditional(test_client)
        t1 = _create_task(test_client, title="T1", blocked_by_conditional_id=conditional["id"])
        _create_task(test_client, title="T2", blocked_by_conditional_id=conditional["id"])

        response = test_client.delete(f"/conditionals/{conditional['id']}")
        assert response.status_code == 200
        assert response.json() == {"released_task_count": 2}

        assert test_client.get(f"/conditionals/{conditional['id']}").status_code == 404
        assert test_client.get(f"/tasks/{t1['id']}").json()["task"]["status"] == "pending"

    def test_delete_store_failure_returns_503(self, test_client, monkeypatch):
        conditional = _create_conditional(test_client)

        def failing_all(self):
            raise OperationalError("SELECT", {}, Exception("database is locked"))

        monkeypatch.setattr("time.sleep", lambda seconds: None)
        monkeypatch.setattr(Query, "all", failing_all)
        response = test_client.delete(f"/conditionals/{conditional['id']}")
        monkeypatch.undo()

        assert response.status_code == 503
        assert response.json()["error"] == "StoreError"
        assert test_client.get(f"/conditionals/{conditional['id']}").status_code == 200

    def test_delete_missing(self, test_client):
        assert test_client.delete("/conditionals/missing").status_code == 404


class TestTaskEndpoints:
    """Test task CRUD API endpoints."""

    def test_create_task(self, test_client):
        task = _create_task(test_client, description="Laptop and camera")

        assert task["title"] == "Buy equipment"
        assert task["status"] == "pending"
        assert task["progress"] == 0
        assert task["scope"] == "day"

    def test_create_task_with_malformed_scope_key(self, test_client):
        response = test_client.post("/tasks", json={"title": "Plan", "scope": "week", "scope_key": "2025-03"})
        assert response.status_code == 400

    def test_create_task_with_compact_day_key_rejected(self, test_client):
        response = test_client.post("/tasks", json={"title": "Plan", "scope": "day", "scope_key": "20250310"})
        assert response.status_code == 400

    def test_create_task_with_missing_parent(self, test_client):
        response = test_client.post(
            "/tasks", json={"title": "Child", "scope": "day", "scope_key": "2025-03-10", "parent_task_id": "missing"}
        )
        assert response.status_code == 404

    def test_list_tasks_by_scope(self, test_client):
        _create_task(test_client)
        _create_task(test_client, title="Weekly review", scope="week", scope_key="2025-W11")

        response = test_client.get("/tasks", params={"scope": "week"})
        assert response.json()["count"] == 1
        assert response.json()["tasks"][0]["title"] == "Weekly review"

    def test_update_task(self, test_client):
        task = _create_task(test_client)

        response = test_client.put(f"/tasks/{task['id']}", json={"title": "Buy laptop", "status": "in-progress"})
        assert response.status_code == 200
        updated = response.json()["task"]
        assert updated["title"] == "Buy laptop"
        assert updated["status"] == "in-progress"
        assert updated["scope_key"] == "2025-03-10"

    def test_blocked_task_cannot_be_completed(self, test_client):
        conditional = _create_conditional(test_client)
        task = _create_task(test_client, blocked_by_conditional_id=conditional["id"])

        response = test_client.put(f"/tasks/{task['id']}", json={"status": "done"})
        assert response.status_code == 400
        assert response.json()["error"] == "BlockedTaskEditError"
        assert test_client.get(f"/tasks/{task['id']}").json()["task"]["status"] == "blocked"

    def test_task_cannot_parent_itself(self, test_client):
        task = _create_task(test_client)
        response = test_client.put(f"/tasks/{task['id']}", json={"parent_task_id": task["id"]})
        assert response.status_code == 400

    def test_delete_task(self, test_client):
        task = _create_task(test_client)

        assert test_client.delete(f"/tasks/{task['id']}").status_code == 204
        assert test_client.get(f"/tasks/{task['id']}").status_code == 404

    def test_link_and_unlink(self, test_client):
        conditional = _create_conditional(test_client)
        task = _create_task(test_client)

        linked = test_client.post(f"/tasks/{task['id']}/link", json={"conditional_id": conditional["id"]})
        assert linked.status_code == 200
        assert linked.json()["task"]["status"] == "blocked"

        unlinked = test_client.post(f"/tasks/{task['id']}/unlink")
        assert unlinked.json()["task"]["status"] == "pending"
        assert unlinked.json()["task"]["blocked_by_conditional_id"] is None


class TestProgressEndpoint:

    def test_progress_rolls_up(self, test_client):
        parent = _create_task(test_client, title="Launch", scope="week", scope_key="2025-W11")
        a = _create_task(test_client, title="A", parent_task_id=parent["id"], contribution_percent=30)
        b = _create_task(test_client, title="B", parent_task_id=parent["id"], contribution_percent=70)

        test_client.put(f"/tasks/{a['id']}/progress", json={"progress": 50})
        response = test_client.put(f"/tasks/{b['id']}/progress", json={"progress": 100})

        assert response.status_code == 200
        assert response.json()["task"]["progress"] == 100
        assert response.json()["updated_ancestor_ids"] == [parent["id"]]
        assert test_client.get(f"/tasks/{parent['id']}").json()["task"]["progress"] == 85

    def test_progress_out_of_range(self, test_client):
        task = _create_task(test_client)
        assert test_client.put(f"/tasks/{task['id']}/progress", json={"progress": 150}).status_code == 422

    def test_delete_child_refreshes_parent(self, test_client):
        parent = _create_task(test_client, title="Launch")
        done = _create_task(test_client, title="Done part", parent_task_id=parent["id"])
        open_part = _create_task(test_client, title="Open part", parent_task_id=parent["id"])
        test_client.put(f"/tasks/{done['id']}/progress", json={"progress": 100})
        assert test_client.get(f"/tasks/{parent['id']}").json()["task"]["progress"] == 50

        test_client.delete(f"/tasks/{open_part['id']}")
        assert test_client.get(f"/tasks/{parent['id']}").json()["task"]["progress"] == 100

    def test_deleting_last_child_keeps_parent_progress(self, test_client):
        parent = _create_task(test_client, title="Launch")
        only_child = _create_task(test_client, title="Only part", parent_task_id=parent["id"])
        test_client.put(f"/tasks/{only_child['id']}/progress", json={"progress": 60})

        assert test_client.delete(f"/tasks/{only_child['id']}").status_code == 204

        leaf = test_client.get(f"/tasks/{parent['id']}").json()["task"]
        assert leaf["progress"] == 60
        response = test_client.put(f"/tasks/{parent['id']}/progress", json={"progress": 10})
        assert response.json()["task"]["progress"] == 10
