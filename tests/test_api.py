"""
End-to-end tests for the HTTP surface.

Background tasks run inside TestClient before the response is returned, so
threshold emails triggered by a request are visible in the outbox fixture.
"""
import inspect

import pytest
from fastapi.testclient import TestClient

from budget_tracker import db, server
from budget_tracker.errors import EmailTransportError
from budget_tracker.server import app


@pytest.fixture
def client():
    return TestClient(app)


def _signup(client, email, name="Hugo"):
    res = client.post("/user/signup", json={"name": name, "email": email, "password": "password123"})
    assert res.status_code == 200, res.text
    body = res.json()
    return body["data"], {"Authorization": f"Bearer {body['token']}"}


@pytest.fixture
def owner(client):
    return _signup(client, "hugo@selego.co")


@pytest.fixture
def other(client):
    return _signup(client, "lea@selego.co", name="Léa")


def _project(client, headers, budget=1000, name="Refonte Site Web"):
    res = client.post("/project", json={"name": name, "budget": budget}, headers=headers)
    assert res.status_code == 200, res.text
    return res.json()["data"]


def _expense(client, headers, project_id, amount, **extra):
    return client.post("/expense", json={"project_id": project_id, "amount": amount, **extra},
                       headers=headers)


class TestUsers:
    def test_password_routes_run_off_the_event_loop(self):
        # bcrypt is CPU bound, FastAPI runs plain def routes in its threadpool
        assert not inspect.iscoroutinefunction(server.signup)
        assert not inspect.iscoroutinefunction(server.signin)

    def test_signin_and_me(self, client, owner):
        res = client.post("/user/signin", json={"email": "HUGO@selego.co", "password": "password123"})
        assert res.status_code == 200
        token = res.json()["token"]
        me = client.get("/user/me", headers={"Authorization": f"Bearer {token}"}).json()["data"]
        assert me["email"] == "hugo@selego.co"
        assert "password" not in me

    def test_wrong_password(self, client, owner):
        res = client.post("/user/signin", json={"email": "hugo@selego.co", "password": "nope-nope"})
        assert res.status_code == 401
        assert res.json() == {"ok": False, "code": "EMAIL_OR_PASSWORD_INVALID"}

    def test_duplicate_signup(self, client, owner):
        res = client.post("/user/signup", json={"email": "hugo@selego.co", "password": "password123"})
        assert res.status_code == 409
        assert res.json()["code"] == "USER_ALREADY_REGISTERED"

    def test_missing_token(self, client):
        res = client.post("/project/search", json={})
        assert res.status_code == 401
        assert res.json()["code"] == "AUTHENTICATION_REQUIRED"

    def test_garbage_token(self, client):
        res = client.get("/user/me", headers={"Authorization": "Bearer not-a-jwt"})
        assert res.status_code == 401
        assert res.json()["code"] == "INVALID_TOKEN"


class TestProjects:
    def test_create_and_get(self, client, owner):
        user, headers = owner
        project = _project(client, headers)
        assert project["owner_id"] == user["id"]
        assert project["owner_email"] == "hugo@selego.co"
        assert project["status"] == "active"
        assert project["budget_warning_sent"] is False
        assert project["budget_exceeded_sent"] is False

        res = client.get(f"/project/{project['id']}", headers=headers)
        assert res.json()["data"]["name"] == "Refonte Site Web"

    @pytest.mark.parametrize("body,code", [
        ({"budget": 10}, "NAME_REQUIRED"),
        ({"name": "   ", "budget": 10}, "NAME_REQUIRED"),
        ({"name": "P"}, "VALID_BUDGET_REQUIRED"),
        ({"name": "P", "budget": -1}, "VALID_BUDGET_REQUIRED"),
        ({"name": "P", "budget": 10, "status": "paused"}, "INVALID_STATUS"),
    ])
    def test_validation(self, client, owner, body, code):
        res = client.post("/project", json=body, headers=owner[1])
        assert res.status_code == 400
        assert res.json() == {"ok": False, "code": code}

    def test_not_found(self, client, owner):
        res = client.get("/project/missing", headers=owner[1])
        assert res.status_code == 404
        assert res.json()["code"] == "PROJECT_NOT_FOUND"

    def test_outsider_cannot_read_update_or_delete(self, client, owner, other):
        project = _project(client, owner[1])
        pid = project["id"]
        assert client.get(f"/project/{pid}", headers=other[1]).status_code == 403
        assert client.put(f"/project/{pid}", json={"name": "X"}, headers=other[1]).status_code == 403
        assert client.delete(f"/project/{pid}", headers=other[1]).status_code == 403

    def test_search_is_scoped_to_visible_projects(self, client, owner, other):
        _project(client, owner[1], name="Mine")
        _project(client, other[1], name="Theirs")
        res = client.post("/project/search", json={}, headers=owner[1])
        assert [p["name"] for p in res.json()["data"]] == ["Mine"]

        res = client.post("/project/search", json={"name": "mIN"}, headers=owner[1])
        assert len(res.json()["data"]) == 1

    def test_budget_endpoint(self, client, owner):
        project = _project(client, owner[1])
        _expense(client, owner[1], project["id"], 400)
        data = client.get(f"/project/{project['id']}/budget", headers=owner[1]).json()["data"]
        assert data["total_spent"] == 400
        assert data["percentage"] == pytest.approx(40)
        assert data["remaining"] == 600
        assert "sous contrôle" in data["message"]

    def test_budget_cut_triggers_check(self, client, owner, outbox):
        project = _project(client, owner[1], budget=2000)
        _expense(client, owner[1], project["id"], 900)
        assert outbox.calls == []
        client.put(f"/project/{project['id']}", json={"budget": 1000}, headers=owner[1])
        assert outbox.subjects == ["Attention au budget - Refonte Site Web"]

    def test_delete(self, client, owner):
        project = _project(client, owner[1])
        assert client.delete(f"/project/{project['id']}", headers=owner[1]).json() == {"ok": True}
        assert db.find_by_id("projects", project["id"]) is None


class TestExpenses:
    def test_threshold_scenario_over_http(self, client, owner, outbox):
        headers = owner[1]
        project = _project(client, headers)
        pid = project["id"]

        assert _expense(client, headers, pid, 400).status_code == 200
        assert _expense(client, headers, pid, 450).status_code == 200
        p = db.find_by_id("projects", pid)
        assert (p["budget_warning_sent"], p["budget_exceeded_sent"]) == (True, False)
        assert len(outbox.calls) == 1

        _expense(client, headers, pid, 200)
        p = db.find_by_id("projects", pid)
        assert (p["budget_warning_sent"], p["budget_exceeded_sent"]) == (True, True)
        assert len(outbox.calls) == 2

        _expense(client, headers, pid, 50)
        assert len(outbox.calls) == 2

    def test_notification_failure_does_not_fail_request(self, client, owner, outbox):
        project = _project(client, owner[1])
        outbox.fail_with = EmailTransportError("Brevo down")

        res = _expense(client, owner[1], project["id"], 900)

        assert res.status_code == 200
        assert res.json()["ok"] is True
        p = db.find_by_id("projects", project["id"])
        assert p["budget_warning_sent"] is False
        assert db.find("notification_log", status="failed")

    @pytest.mark.parametrize("body,code", [
        ({"amount": 10}, "PROJECT_ID_REQUIRED"),
        ({"project_id": "x"}, "VALID_AMOUNT_REQUIRED"),
        ({"project_id": "x", "amount": 0}, "VALID_AMOUNT_REQUIRED"),
        ({"project_id": "x", "amount": 10, "category": "Voyage"}, "INVALID_CATEGORY"),
    ])
    def test_validation(self, client, owner, body, code):
        res = client.post("/expense", json=body, headers=owner[1])
        assert res.status_code == 400
        assert res.json()["code"] == code

    def test_unknown_project(self, client, owner):
        res = _expense(client, owner[1], "missing", 10)
        assert res.status_code == 404
        assert res.json()["code"] == "PROJECT_NOT_FOUND"

    def test_auto_categorizes_from_description(self, client, owner, outbox):
        project = _project(client, owner[1])
        res = _expense(client, owner[1], project["id"], 10, description="Facebook Ads campaign")
        data = res.json()["data"]
        assert data["category"] == "Marketing"
        assert data["project_name"] == "Refonte Site Web"
        assert data["created_by_user_email"] == "hugo@selego.co"

    def test_outsider_cannot_add_expense(self, client, owner, other):
        project = _project(client, owner[1])
        res = _expense(client, other[1], project["id"], 10)
        assert res.status_code == 403
        assert res.json()["code"] == "UNAUTHORIZED"

    def test_only_creator_updates(self, client, owner, other, outbox):
        project = _project(client, owner[1])
        expense = _expense(client, owner[1], project["id"], 10).json()["data"]
        res = client.put(f"/expense/{expense['id']}", json={"amount": 20}, headers=other[1])
        assert res.status_code == 403

    def test_amount_update_triggers_check(self, client, owner, outbox):
        project = _project(client, owner[1])
        expense = _expense(client, owner[1], project["id"], 100).json()["data"]
        assert outbox.calls == []
        res = client.put(f"/expense/{expense['id']}", json={"amount": 1000}, headers=owner[1])
        assert res.json()["data"]["amount"] == 1000
        assert outbox.subjects == ["Budget dépassé - Refonte Site Web"]

    def test_description_update_does_not_trigger_check(self, client, owner, monkeypatch):
        project = _project(client, owner[1])
        expense = _expense(client, owner[1], project["id"], 100).json()["data"]
        calls = []
        monkeypatch.setattr("budget_tracker.server.dispatch_budget_check",
                            lambda tasks, pid: calls.append(pid))
        client.put(f"/expense/{expense['id']}", json={"description": "Hébergement"}, headers=owner[1])
        assert calls == []

    def test_search_and_delete(self, client, owner, outbox):
        project = _project(client, owner[1])
        first = _expense(client, owner[1], project["id"], 10, category="Design").json()["data"]
        _expense(client, owner[1], project["id"], 20, category="RH")

        res = client.post("/expense/search", json={"project_id": project["id"], "category": "Design"},
                          headers=owner[1])
        assert [e["id"] for e in res.json()["data"]] == [first["id"]]

        assert client.delete(f"/expense/{first['id']}", headers=owner[1]).json() == {"ok": True}
        res = client.get(f"/expense/{first['id']}", headers=owner[1])
        assert res.status_code == 404
        assert res.json()["code"] == "EXPENSE_NOT_FOUND"

    def test_categorize_endpoint(self, client, owner):
        res = client.post("/expense/categorize", json={"description": "AWS hosting renewal"},
                          headers=owner[1])
        assert res.json() == {"ok": True, "data": {"category": "Développement"}}

        res = client.post("/expense/categorize", json={"description": ""}, headers=owner[1])
        assert res.status_code == 400
        assert res.json()["code"] == "DESCRIPTION_REQUIRED"


class TestMembers:
    def _add(self, client, headers, project_id, email, **extra):
        return client.post("/project-member", json={"project_id": project_id, "user_email": email, **extra},
                           headers=headers)

    def test_member_can_add_expenses(self, client, owner, other, outbox):
        project = _project(client, owner[1])
        res = self._add(client, owner[1], project["id"], "Lea@selego.co")
        member = res.json()["data"]
        assert member["role"] == "member"
        assert member["can_add_expenses"] is True
        assert member["can_edit_project"] is False
        assert member["added_by_user_name"] == "Hugo"

        assert _expense(client, other[1], project["id"], 10).status_code == 200
        assert client.get(f"/project/{project['id']}", headers=other[1]).status_code == 200
        assert client.put(f"/project/{project['id']}", json={"name": "X"}, headers=other[1]).status_code == 403

    def test_viewer_without_expense_permission(self, client, owner, other):
        project = _project(client, owner[1])
        self._add(client, owner[1], project["id"], "lea@selego.co", role="viewer", can_add_expenses=False)
        assert _expense(client, other[1], project["id"], 10).status_code == 403

    def test_editor_can_update_project(self, client, owner, other):
        project = _project(client, owner[1])
        self._add(client, owner[1], project["id"], "lea@selego.co", can_edit_project=True)
        res = client.put(f"/project/{project['id']}", json={"description": "Nouveau"}, headers=other[1])
        assert res.status_code == 200
        assert client.delete(f"/project/{project['id']}", headers=other[1]).status_code == 403

    def test_duplicate_member(self, client, owner, other):
        project = _project(client, owner[1])
        self._add(client, owner[1], project["id"], "lea@selego.co")
        res = self._add(client, owner[1], project["id"], "lea@selego.co")
        assert res.status_code == 409
        assert res.json()["code"] == "ALREADY_MEMBER"

    def test_unknown_user_and_bad_role(self, client, owner):
        project = _project(client, owner[1])
        assert self._add(client, owner[1], project["id"], "ghost@selego.co").json()["code"] == "USER_NOT_FOUND"
        res = self._add(client, owner[1], project["id"], "ghost@selego.co", role="boss")
        assert res.json()["code"] == "INVALID_ROLE"

    def test_only_owner_manages_members(self, client, owner, other):
        project = _project(client, owner[1])
        res = self._add(client, other[1], project["id"], "lea@selego.co")
        assert res.status_code == 403

    def test_update_search_and_remove(self, client, owner, other):
        project = _project(client, owner[1])
        member = self._add(client, owner[1], project["id"], "lea@selego.co").json()["data"]

        res = client.put(f"/project-member/{member['id']}", json={"role": "viewer"}, headers=owner[1])
        assert res.json()["data"]["role"] == "viewer"

        res = client.post("/project-member/search", json={"project_id": project["id"]}, headers=owner[1])
        assert [m["user_email"] for m in res.json()["data"]] == ["lea@selego.co"]

        assert client.delete(f"/project-member/{member['id']}", headers=owner[1]).json() == {"ok": True}
        res = client.delete(f"/project-member/{member['id']}", headers=owner[1])
        assert res.json()["code"] == "MEMBER_NOT_FOUND"


class TestReports:
    def test_requires_admin(self, client, owner):
        res = client.post("/report/daily-budget", headers=owner[1])
        assert res.status_code == 403

    def test_admin_triggers_digest(self, client, owner, outbox):
        user, headers = owner
        db.update("users", user["id"], {"role": "admin"})
        project = _project(client, headers)
        db.create("expenses", {"project_id": project["id"], "amount": 1200})

        res = client.post("/report/daily-budget", headers=headers)

        assert res.status_code == 200
        assert res.json()["data"]["emails_sent"] == 1
        assert outbox.subjects[-1] == "Rapport budgétaire quotidien - 1 projet à surveiller"


def test_root(client):
    body = client.get("/").json()
    assert body["name"] == "api"
    assert body["environment"] == "test"
