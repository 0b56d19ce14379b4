"""Run the daily budget report once: `python -m budget_tracker.digest`."""
from budget_tracker.digest import send_daily_budget_report
from budget_tracker.errors import configure_logging

configure_logging()
send_daily_budget_report()
