"""
Budget Tracker — Daily Budget Report

Lists every active project at risk (≥80%) or over budget (≥100%), grouped
by owner, and emails each owner one summary. Meant to be triggered once a
day by an external scheduler (cron → `python -m budget_tracker.digest`) or
manually through POST /report/daily-budget.

There is no idempotency guard: running it twice sends the digest twice.
"""
import logging
from datetime import date

from budget_tracker import db
from budget_tracker.brevo import send_email
from budget_tracker.budget import evaluate_project
from budget_tracker.config import WARNING_THRESHOLD_PCT
from budget_tracker.errors import capture
from budget_tracker.notifications import log_notification
from budget_tracker.templates import render_daily_report_email

logger = logging.getLogger(__name__)


def build_daily_report(projects: list, expenses: list) -> list:
    """Group at-risk active projects by owner.

    Returns [{owner_id, owner_name, owner_email, projects: [...]}] where each
    owner's projects are sorted by percentage, highest first.
    """
    by_owner = {}
    for project in projects:
        if project.get("status", "active") != "active":
            continue
        ev = evaluate_project(project, expenses)
        if ev["percentage"] < WARNING_THRESHOLD_PCT:
            continue
        owner_id = project.get("owner_id")
        group = by_owner.setdefault(owner_id, {
            "owner_id": owner_id,
            "owner_name": project.get("owner_name"),
            "owner_email": project.get("owner_email"),
            "projects": [],
        })
        group["projects"].append({"id": project["id"], "name": project.get("name", ""), **ev})

    for group in by_owner.values():
        group["projects"].sort(key=lambda p: p["percentage"], reverse=True)
    return list(by_owner.values())


def send_report_to_owner(owner: dict, today: date = None):
    subject, html = render_daily_report_email(owner["owner_name"], owner["projects"], today)
    recipients = [{"email": owner["owner_email"], "name": owner["owner_name"]}]
    result = send_email(recipients, subject, html)
    logger.info("Report sent to %s (%d projects)", owner["owner_email"], len(owner["projects"]))
    return result


def send_daily_budget_report(today: date = None) -> dict:
    """Build and send the digest. Per-owner send failures are logged, not raised."""
    logger.info("Generating daily budget report...")
    projects = db.find("projects", status="active")
    summary = {"emails_sent": 0, "emails_failed": 0, "projects_at_risk": 0, "owners": []}
    if not projects:
        logger.info("No active projects found")
        return summary

    report = build_daily_report(projects, db.find("expenses"))
    summary["projects_at_risk"] = sum(len(o["projects"]) for o in report)
    if not report:
        logger.info("No projects at risk - daily report skipped")
        return summary

    for owner in report:
        recipients = [{"email": owner["owner_email"], "name": owner["owner_name"]}]
        try:
            result = send_report_to_owner(owner, today)
        except Exception as e:
            logger.error("Daily report to %s failed: %s", owner["owner_email"], e)
            capture(e, owner_id=owner["owner_id"])
            summary["emails_failed"] += 1
            log_notification({"id": None, "name": None}, "digest", "failed", recipients, error=str(e))
            continue
        summary["emails_sent"] += 1
        summary["owners"].append(owner["owner_id"])
        log_notification({"id": None, "name": None}, "digest",
                         "skipped" if result is None else "sent", recipients)

    logger.info("Daily budget report sent to %d users, %d projects at risk",
                summary["emails_sent"], summary["projects_at_risk"])
    return summary

