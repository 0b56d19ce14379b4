"""
Budget Tracker — Budget Evaluator

Pure helpers that derive a project's spend position from its expenses.
Percentage of budget is never stored; only the notification latch flags are.
"""
from budget_tracker.config import (
    WARNING_THRESHOLD_PCT, EXCEEDED_THRESHOLD_PCT, MODERATE_THRESHOLD_PCT,
)


def _amount(expense: dict) -> float:
    """Safe numeric conversion: None/empty → 0."""
    val = expense.get("amount")
    if val is None or val == "":
        return 0.0
    try:
        return float(val)
    except (ValueError, TypeError):
        return 0.0


def classify_percentage(percentage: float) -> str:
    """over (≥100) / warning (≥80) / moderate (≥50) / ok."""
    if percentage >= EXCEEDED_THRESHOLD_PCT:
        return "over"
    if percentage >= WARNING_THRESHOLD_PCT:
        return "warning"
    if percentage >= MODERATE_THRESHOLD_PCT:
        return "moderate"
    return "ok"


def evaluate_budget(budget, expenses: list) -> dict:
    """Compute total spent, percentage used and remaining for one budget.

    A budget of zero (or less) yields percentage 0 rather than dividing.
    Remaining may be negative.
    """
    budget = float(budget or 0)
    total_spent = sum(_amount(e) for e in expenses)
    percentage = (total_spent / budget) * 100 if budget > 0 else 0.0
    return {
        "budget": budget,
        "total_spent": total_spent,
        "percentage": percentage,
        "remaining": budget - total_spent,
        "expense_count": len(expenses),
        "status": classify_percentage(percentage),
    }


def evaluate_project(project: dict, expenses: list) -> dict:
    """evaluate_budget() restricted to the expenses referencing `project`."""
    own = [e for e in expenses if e.get("project_id") == project["id"]]
    return evaluate_budget(project.get("budget"), own)
