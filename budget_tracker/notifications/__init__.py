"""
Budget Tracker — Budget Threshold Notifications

State machine per project, derived from the two persisted latch flags:

  NONE ──(≥80%)──→ WARNED ──(≥100%)──→ EXCEEDED
    └─────────────(≥100%)─────────────────↑

Transitions only move forward; no normal operation resets the flags, so each
threshold crossing emails the owner exactly once. Within a process, a
per-project lock is held from the decision through the send to the flag write,
so concurrent checks on one project run one after the other. Flags are written
after the send returns, with a compare-and-set against the state the decision
was based on. A failed send leaves the flags untouched so the next mutation
retries.

Dispatch:
  Request handlers call dispatch_budget_check(), which hands run_budget_check()
  to FastAPI BackgroundTasks. run_budget_check() retries, records failures in
  notification_log and never raises: the triggering request is never affected.
"""
import logging
import threading
import time

from fastapi import BackgroundTasks

from budget_tracker import db
from budget_tracker.brevo import send_email
from budget_tracker.budget import evaluate_budget
from budget_tracker.config import (
    WARNING_THRESHOLD_PCT, EXCEEDED_THRESHOLD_PCT, NOTIFY_MAX_ATTEMPTS, NOTIFY_RETRY_DELAY,
)
from budget_tracker.errors import capture
from budget_tracker.templates import render_warning_email, render_exceeded_email

logger = logging.getLogger(__name__)

STATE_NONE = "none"
STATE_WARNED = "warned"
STATE_EXCEEDED = "exceeded"

KIND_WARNING = "warning"
KIND_EXCEEDED = "exceeded"

RENDERERS = {KIND_WARNING: render_warning_email, KIND_EXCEEDED: render_exceeded_email}

_project_locks = {}
_project_locks_guard = threading.Lock()


# ============================================================
# STATE
# ============================================================
def notification_state(project: dict) -> str:
    if project.get("budget_exceeded_sent"):
        return STATE_EXCEEDED
    if project.get("budget_warning_sent"):
        return STATE_WARNED
    return STATE_NONE


def decide_notification(percentage: float, project: dict):
    """Which email (if any) should fire now: "exceeded", "warning" or None."""
    if percentage >= EXCEEDED_THRESHOLD_PCT:
        return None if project.get("budget_exceeded_sent") else KIND_EXCEEDED
    if percentage >= WARNING_THRESHOLD_PCT and not project.get("budget_warning_sent"):
        return KIND_WARNING
    return None


def _advance_flags(project_id: str, kind: str, expected_state: str) -> bool:
    """Compare-and-set the latch flags. False if the state moved meanwhile."""
    with db.transaction() as store:
        project = next((p for p in store["projects"] if p["id"] == project_id), None)
        if project is None or notification_state(project) != expected_state:
            return False
        project["budget_warning_sent"] = True
        if kind == KIND_EXCEEDED:
            project["budget_exceeded_sent"] = True
        project["updated_at"] = db.now_iso()
        return True


def log_notification(project: dict, kind: str, status: str, recipients: list,
                     percentage: float = None, attempts: int = 1, error: str = None) -> dict:
    return db.create("notification_log", {
        "project_id": project.get("id") if project else None,
        "project_name": project.get("name") if project else None,
        "kind": kind, "status": status,
        "recipients": [r.get("email") for r in recipients],
        "percentage": round(percentage, 2) if percentage is not None else None,
        "attempts": attempts, "error": error,
    })


# ============================================================
# GATE
# ============================================================
def _project_lock(project_id: str) -> threading.Lock:
    with _project_locks_guard:
        return _project_locks.setdefault(project_id, threading.Lock())


def check_and_notify_budget_status(project_id: str):
    """Evaluate one project and send the threshold email it is due, if any.

    Returns the kind sent ("warning" / "exceeded") or None. Transport errors
    propagate to the caller with the flags unchanged. Every send that went
    out is logged, "skipped" when the transport dropped it (no API key or no
    allowed recipient).
    """
    with _project_lock(project_id):
        project = db.find_by_id("projects", project_id)
        if not project:
            return None

        expenses = db.find("expenses", project_id=project_id)
        evaluation = evaluate_budget(project.get("budget"), expenses)
        kind = decide_notification(evaluation["percentage"], project)
        if kind is None:
            return None

        expected_state = notification_state(project)
        subject, html = RENDERERS[kind](project, evaluation)
        recipients = [{"email": project.get("owner_email"), "name": project.get("owner_name")}]
        result = send_email(recipients, subject, html)

        status = "skipped" if result is None else "sent"
        log_notification(project, kind, status, recipients, evaluation["percentage"])
        if not _advance_flags(project_id, kind, expected_state):
            logger.warning("Project %s flags changed outside the gate while sending, left as is",
                           project_id)
        logger.info("Budget %s email %s for project %s (%.0f%%)",
                    kind, status, project.get("name"), evaluation["percentage"])
        return kind


# ============================================================
# DISPATCH
# ============================================================
def run_budget_check(project_id: str, max_attempts: int = None, retry_delay: float = None):
    """Background entry point: retry the gate, then record the failure."""
    max_attempts = max(1, max_attempts or NOTIFY_MAX_ATTEMPTS)
    retry_delay = NOTIFY_RETRY_DELAY if retry_delay is None else retry_delay
    last_error = None
    for attempt in range(1, max_attempts + 1):
        try:
            return check_and_notify_budget_status(project_id)
        except Exception as e:
            last_error = e
            logger.warning("Budget notification attempt %d/%d for project %s failed: %s",
                           attempt, max_attempts, project_id, e)
            if attempt < max_attempts and retry_delay:
                time.sleep(retry_delay)

    logger.error("Budget notification for project %s gave up after %d attempts",
                 project_id, max_attempts)
    capture(last_error, project_id=project_id)
    try:
        project = db.find_by_id("projects", project_id) or {"id": project_id}
        recipients = [{"email": project.get("owner_email"), "name": project.get("owner_name")}]
        log_notification(project, "budget_check", "failed", recipients,
                         attempts=max_attempts, error=str(last_error))
    except Exception as e:
        logger.exception("Could not record notification failure for project %s", project_id)
        capture(e, project_id=project_id)
    return None


def dispatch_budget_check(background_tasks: BackgroundTasks, project_id: str):
    """Schedule the threshold check to run after the response is sent."""
    background_tasks.add_task(run_budget_check, project_id)
