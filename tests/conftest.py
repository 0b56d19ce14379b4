import os
import tempfile

# The config module reads the environment at import time: pin a throwaway,
# in-memory store and disable every outbound integration before any import.
os.environ["PERSIST_DATA"] = "false"
os.environ["DATA_DIR"] = tempfile.mkdtemp(prefix="budget-tracker-tests-")
os.environ["ENVIRONMENT"] = "test"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["BREVO_KEY"] = ""
os.environ["NOTIFY_RETRY_DELAY"] = "0"
os.environ.pop("ANTHROPIC_API_KEY", None)
os.environ.pop("DATABASE_URL", None)

import pytest

from budget_tracker import db


class EmailRecorder:
    """Stand-in for brevo.send_email that records every call."""

    def __init__(self):
        self.calls = []
        self.fail_with = None

    def __call__(self, to, subject, html_content, **kwargs):
        if self.fail_with is not None:
            raise self.fail_with
        self.calls.append({"to": to, "subject": subject, "html": html_content})
        return True

    @property
    def subjects(self):
        return [c["subject"] for c in self.calls]


@pytest.fixture(autouse=True)
def clean_db():
    db.reset_db()
    yield
    db.reset_db()


@pytest.fixture
def outbox(monkeypatch):
    """Capture threshold and digest emails instead of calling Brevo."""
    recorder = EmailRecorder()
    monkeypatch.setattr("budget_tracker.notifications.send_email", recorder)
    monkeypatch.setattr("budget_tracker.digest.send_email", recorder)
    return recorder


def make_project(budget=1000, owner_id="u1", owner_name="Hugo", owner_email="hugo@selego.co",
                 status="active", **extra):
    return db.create("projects", {
        "name": extra.pop("name", "Refonte Site Web"), "budget": budget, "description": "",
        "status": status, "owner_id": owner_id, "owner_name": owner_name,
        "owner_email": owner_email, "budget_warning_sent": False,
        "budget_exceeded_sent": False, **extra,
    })


def add_expense(project, amount, **extra):
    return db.create("expenses", {
        "project_id": project["id"], "project_name": project["name"], "amount": amount,
        "category": extra.pop("category", None), "description": extra.pop("description", ""),
        "created_by_user_id": project["owner_id"], "created_by_user_name": project["owner_name"],
        "created_by_user_email": project["owner_email"], **extra,
    })
