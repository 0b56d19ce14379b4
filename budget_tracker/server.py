"""
Budget Tracker — FastAPI routing layer

Projects with budgets, expenses logged against them, collaborators, and
email alerts when spending crosses the warning / exceeded thresholds.
Every response is {"ok": true, "data": ...} or {"ok": false, "code": ...}.
"""
import logging
import re
from datetime import datetime
from typing import Optional

from fastapi import BackgroundTasks, Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from budget_tracker import db
from budget_tracker.auth import (
    get_current_user, require_admin, register_user, authenticate_user, create_jwt,
    public_user, is_admin, is_owner, get_membership, require_owner,
    require_project_permission, require_creator,
)
from budget_tracker.budget import evaluate_budget
from budget_tracker.categorizer import categorize_expense
from budget_tracker.config import (
    APP_URL, ENVIRONMENT, PORT, VERSION, USE_REAL_API,
    PROJECT_STATUSES, MEMBER_ROLES, DEFAULT_MEMBER_ROLE, CATEGORIES,
)
from budget_tracker.digest import send_daily_budget_report
from budget_tracker.errors import (
    configure_logging, register_error_handlers,
    ValidationError, NotFoundError, AuthorizationError, ConflictError,
)
from budget_tracker.notifications import dispatch_budget_check
from budget_tracker.templates import budget_alert_message

configure_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title="Budget Tracker", version=VERSION)
app.add_middleware(CORSMiddleware, allow_origins=[APP_URL], allow_credentials=True,
                   allow_methods=["*"], allow_headers=["*"])
register_error_handlers(app)

LAST_DEPLOYED_AT = datetime.now()


# ============================================================
# REQUEST BODIES
# ============================================================
class SignupBody(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None


class SigninBody(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


class ProjectBody(BaseModel):
    name: Optional[str] = None
    budget: Optional[float] = None
    description: Optional[str] = None
    status: Optional[str] = None


class ProjectSearch(BaseModel):
    owner_id: Optional[str] = None
    status: Optional[str] = None
    name: Optional[str] = None


class ExpenseBody(BaseModel):
    project_id: Optional[str] = None
    amount: Optional[float] = None
    category: Optional[str] = None
    description: Optional[str] = None


class ExpenseSearch(BaseModel):
    project_id: Optional[str] = None
    created_by_user_id: Optional[str] = None
    category: Optional[str] = None


class CategorizeBody(BaseModel):
    description: Optional[str] = None


class MemberBody(BaseModel):
    project_id: Optional[str] = None
    user_email: Optional[str] = None
    role: Optional[str] = None
    can_add_expenses: Optional[bool] = None
    can_edit_project: Optional[bool] = None


class MemberSearch(BaseModel):
    project_id: Optional[str] = None
    user_id: Optional[str] = None


def ok(data=None, **extra):
    return {"ok": True, "data": data, **extra}


def _strip(value):
    return value.strip() if isinstance(value, str) else value


# ============================================================
# LOOKUPS & VISIBILITY
# ============================================================
def _get_project(project_id: str) -> dict:
    project = db.find_by_id("projects", project_id)
    if not project:
        raise NotFoundError("PROJECT_NOT_FOUND")
    return project


def _get_expense(expense_id: str) -> dict:
    expense = db.find_by_id("expenses", expense_id)
    if not expense:
        raise NotFoundError("EXPENSE_NOT_FOUND")
    return expense


def _get_member(member_id: str) -> dict:
    member = db.find_by_id("project_members", member_id)
    if not member:
        raise NotFoundError("MEMBER_NOT_FOUND")
    return member


def _visible_project_ids(user: dict) -> set:
    owned = {p["id"] for p in db.find("projects", owner_id=user["id"])}
    joined = {m["project_id"] for m in db.find("project_members", user_id=user["id"])}
    return owned | joined


def _require_view(user: dict, project: dict):
    if is_admin(user) or is_owner(user, project) or get_membership(user, project):
        return
    raise AuthorizationError("UNAUTHORIZED")


# ============================================================
# ROOT
# ============================================================
@app.get("/")
async def root():
    return {"name": "api", "environment": ENVIRONMENT,
            "last_deployed_at": LAST_DEPLOYED_AT.isoformat()}


@app.get("/api/health")
async def health():
    return {"status": "ok", "product": "Budget Tracker", "version": VERSION,
            "categorizer": "claude" if USE_REAL_API else "keywords"}


# ============================================================
# USERS
# ============================================================
@app.post("/user/signup")
def signup(body: SignupBody):
    user = register_user(body.name, body.email, body.password)
    return ok(public_user(user), token=create_jwt(user))


@app.post("/user/signin")
def signin(body: SigninBody):
    user = authenticate_user(body.email, body.password)
    return ok(public_user(user), token=create_jwt(user))


@app.get("/user/me")
async def me(user: dict = Depends(get_current_user)):
    return ok(user)


# ============================================================
# PROJECTS
# ============================================================
@app.post("/project")
async def create_project(body: ProjectBody, user: dict = Depends(get_current_user)):
    name = _strip(body.name)
    if not name:
        raise ValidationError("NAME_REQUIRED")
    if body.budget is None or body.budget < 0:
        raise ValidationError("VALID_BUDGET_REQUIRED")
    status = body.status or "active"
    if status not in PROJECT_STATUSES:
        raise ValidationError("INVALID_STATUS")

    project = db.create("projects", {
        "name": name, "budget": body.budget, "description": _strip(body.description),
        "status": status,
        "owner_id": user["id"], "owner_name": user["name"], "owner_email": user["email"],
        "budget_warning_sent": False, "budget_exceeded_sent": False,
    })
    logger.info("Project %s created by %s", project["id"], user["email"])
    return ok(project)


@app.get("/project/{project_id}")
async def get_project(project_id: str, user: dict = Depends(get_current_user)):
    project = _get_project(project_id)
    _require_view(user, project)
    return ok(project)


@app.get("/project/{project_id}/budget")
async def get_project_budget(project_id: str, user: dict = Depends(get_current_user)):
    project = _get_project(project_id)
    _require_view(user, project)
    ev = evaluate_budget(project.get("budget"), db.find("expenses", project_id=project_id))
    message = budget_alert_message(project["name"], ev["budget"], ev["total_spent"], ev["percentage"])
    return ok({**ev, "message": message,
               "budget_warning_sent": project.get("budget_warning_sent", False),
               "budget_exceeded_sent": project.get("budget_exceeded_sent", False)})


@app.post("/project/search")
async def search_projects(body: ProjectSearch, user: dict = Depends(get_current_user)):
    filters = {k: v for k, v in (("owner_id", body.owner_id), ("status", body.status)) if v}
    projects = db.find("projects", sort_by="created_at", **filters)
    if body.name:
        pattern = re.compile(re.escape(body.name), re.IGNORECASE)
        projects = [p for p in projects if pattern.search(p.get("name", ""))]
    if not is_admin(user):
        visible = _visible_project_ids(user)
        projects = [p for p in projects if p["id"] in visible]
    return ok(projects)


@app.put("/project/{project_id}")
async def update_project(project_id: str, body: ProjectBody, background_tasks: BackgroundTasks,
                         user: dict = Depends(get_current_user)):
    project = _get_project(project_id)
    require_project_permission(user, project, "can_edit_project")

    changes = {}
    if body.name is not None:
        if not _strip(body.name):
            raise ValidationError("NAME_REQUIRED")
        changes["name"] = _strip(body.name)
    if body.budget is not None:
        if body.budget < 0:
            raise ValidationError("VALID_BUDGET_REQUIRED")
        changes["budget"] = body.budget
    if body.description is not None:
        changes["description"] = _strip(body.description)
    if body.status is not None:
        if body.status not in PROJECT_STATUSES:
            raise ValidationError("INVALID_STATUS")
        changes["status"] = body.status

    updated = db.update("projects", project_id, changes)
    if "budget" in changes and changes["budget"] != project.get("budget"):
        dispatch_budget_check(background_tasks, project_id)
    return ok(updated)


@app.delete("/project/{project_id}")
async def delete_project(project_id: str, user: dict = Depends(get_current_user)):
    project = _get_project(project_id)
    require_owner(user, project)
    db.delete("projects", project_id)
    logger.info("Project %s deleted by %s", project_id, user["email"])
    return {"ok": True}


# ============================================================
# EXPENSES
# ============================================================
@app.post("/expense")
async def create_expense(body: ExpenseBody, background_tasks: BackgroundTasks,
                         user: dict = Depends(get_current_user)):
    if not body.project_id:
        raise ValidationError("PROJECT_ID_REQUIRED")
    if body.amount is None or body.amount <= 0:
        raise ValidationError("VALID_AMOUNT_REQUIRED")
    if body.category and body.category not in CATEGORIES:
        raise ValidationError("INVALID_CATEGORY")

    project = _get_project(body.project_id)
    require_project_permission(user, project, "can_add_expenses")

    description = _strip(body.description)
    category = body.category
    if not category and description:
        category = await categorize_expense(description)

    expense = db.create("expenses", {
        "project_id": project["id"], "project_name": project["name"],
        "amount": body.amount, "category": category, "description": description,
        "created_by_user_id": user["id"], "created_by_user_name": user["name"],
        "created_by_user_email": user["email"],
    })
    dispatch_budget_check(background_tasks, project["id"])
    return ok(expense)


@app.post("/expense/search")
async def search_expenses(body: ExpenseSearch, user: dict = Depends(get_current_user)):
    filters = {k: v for k, v in (("project_id", body.project_id),
                                 ("created_by_user_id", body.created_by_user_id),
                                 ("category", body.category)) if v}
    if body.project_id:
        _require_view(user, _get_project(body.project_id))
    expenses = db.find("expenses", sort_by="created_at", **filters)
    if not is_admin(user) and not body.project_id:
        visible = _visible_project_ids(user)
        expenses = [e for e in expenses
                    if e["project_id"] in visible or e.get("created_by_user_id") == user["id"]]
    return ok(expenses)


@app.post("/expense/categorize")
async def categorize(body: CategorizeBody, user: dict = Depends(get_current_user)):
    if not _strip(body.description):
        raise ValidationError("DESCRIPTION_REQUIRED")
    return ok({"category": await categorize_expense(body.description)})


@app.get("/expense/{expense_id}")
async def get_expense(expense_id: str, user: dict = Depends(get_current_user)):
    expense = _get_expense(expense_id)
    if expense.get("created_by_user_id") != user["id"]:
        project = db.find_by_id("projects", expense["project_id"])
        if project:
            _require_view(user, project)
        elif not is_admin(user):
            raise AuthorizationError("UNAUTHORIZED")
    return ok(expense)


@app.put("/expense/{expense_id}")
async def update_expense(expense_id: str, body: ExpenseBody, background_tasks: BackgroundTasks,
                         user: dict = Depends(get_current_user)):
    expense = _get_expense(expense_id)
    require_creator(user, expense)

    changes = {}
    if body.amount is not None:
        if body.amount < 0:
            raise ValidationError("VALID_AMOUNT_REQUIRED")
        changes["amount"] = body.amount
    if body.category is not None:
        if body.category and body.category not in CATEGORIES:
            raise ValidationError("INVALID_CATEGORY")
        changes["category"] = body.category or None
    if body.description is not None:
        changes["description"] = _strip(body.description)

    updated = db.update("expenses", expense_id, changes)
    if "amount" in changes:
        dispatch_budget_check(background_tasks, expense["project_id"])
    return ok(updated)


@app.delete("/expense/{expense_id}")
async def delete_expense(expense_id: str, user: dict = Depends(get_current_user)):
    expense = _get_expense(expense_id)
    require_creator(user, expense)
    db.delete("expenses", expense_id)
    return {"ok": True}


# ============================================================
# PROJECT MEMBERS
# ============================================================
@app.post("/project-member")
async def add_member(body: MemberBody, user: dict = Depends(get_current_user)):
    if not body.project_id:
        raise ValidationError("PROJECT_ID_REQUIRED")
    if not _strip(body.user_email):
        raise ValidationError("USER_EMAIL_REQUIRED")
    role = body.role or DEFAULT_MEMBER_ROLE
    if role not in MEMBER_ROLES:
        raise ValidationError("INVALID_ROLE")

    project = _get_project(body.project_id)
    require_owner(user, project)

    to_add = db.find_one("users", email=body.user_email.lower().strip())
    if not to_add:
        raise NotFoundError("USER_NOT_FOUND")

    with db.transaction() as store:
        if any(m["project_id"] == project["id"] and m["user_id"] == to_add["id"]
               for m in store["project_members"]):
            raise ConflictError("ALREADY_MEMBER")
        ts = db.now_iso()
        member = {
            "id": db.new_id(),
            "project_id": project["id"], "project_name": project["name"],
            "user_id": to_add["id"], "user_name": to_add["name"],
            "user_email": to_add["email"], "user_avatar": to_add.get("avatar"),
            "role": role,
            "can_add_expenses": True if body.can_add_expenses is None else body.can_add_expenses,
            "can_edit_project": False if body.can_edit_project is None else body.can_edit_project,
            "added_by_user_id": user["id"], "added_by_user_name": user["name"],
            "created_at": ts, "updated_at": ts,
        }
        store["project_members"].append(member)
    return ok(dict(member))


@app.post("/project-member/search")
async def search_members(body: MemberSearch, user: dict = Depends(get_current_user)):
    filters = {k: v for k, v in (("project_id", body.project_id), ("user_id", body.user_id)) if v}
    if body.project_id:
        _require_view(user, _get_project(body.project_id))
    members = db.find("project_members", sort_by="created_at", **filters)
    if not is_admin(user) and not body.project_id:
        visible = _visible_project_ids(user)
        members = [m for m in members if m["project_id"] in visible]
    return ok(members)


@app.put("/project-member/{member_id}")
async def update_member(member_id: str, body: MemberBody, user: dict = Depends(get_current_user)):
    member = _get_member(member_id)
    require_owner(user, _get_project(member["project_id"]))

    changes = {}
    if body.role is not None:
        if body.role not in MEMBER_ROLES:
            raise ValidationError("INVALID_ROLE")
        changes["role"] = body.role
    if body.can_add_expenses is not None:
        changes["can_add_expenses"] = body.can_add_expenses
    if body.can_edit_project is not None:
        changes["can_edit_project"] = body.can_edit_project
    return ok(db.update("project_members", member_id, changes))


@app.delete("/project-member/{member_id}")
async def remove_member(member_id: str, user: dict = Depends(get_current_user)):
    member = _get_member(member_id)
    require_owner(user, _get_project(member["project_id"]))
    db.delete("project_members", member_id)
    return {"ok": True}


# ============================================================
# REPORTS
# ============================================================
@app.post("/report/daily-budget")
def trigger_daily_report(user: dict = Depends(require_admin)):
    summary = send_daily_budget_report()
    return {"ok": True, "message": "Daily budget report sent successfully", "data": summary}


if __name__ == "__main__":
    import uvicorn
    logger.info("Starting Budget Tracker v%s on port %d (%s)", VERSION, PORT, ENVIRONMENT)
    uvicorn.run(app, host="0.0.0.0", port=PORT)
