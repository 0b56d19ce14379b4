"""Load demo data: `python -m budget_tracker.seed`."""
from budget_tracker.errors import configure_logging
from budget_tracker.seed import seed

configure_logging()
seed()
