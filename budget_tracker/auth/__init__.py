"""
Budget Tracker — Authentication & Access Control
JWT bearer tokens, password hashing, user store, project ownership checks.
"""
from datetime import datetime, timedelta, timezone

import bcrypt
import jwt as pyjwt
from fastapi import Request

from budget_tracker import db
from budget_tracker.config import (
    JWT_SECRET, JWT_ALGORITHM, JWT_EXPIRY_HOURS, MIN_PASSWORD_LENGTH,
    DEFAULT_USER_ROLE,
)
from budget_tracker.errors import (
    AuthenticationError, AuthorizationError, ConflictError, ValidationError,
)

# ============================================================
# PASSWORD HASHING
# ============================================================
def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt()).decode()


def verify_password(password: str, hashed: str) -> bool:
    return bcrypt.checkpw(password.encode(), hashed.encode())


def validate_password(password: str) -> bool:
    return bool(password) and len(password) >= MIN_PASSWORD_LENGTH

# ============================================================
# JWT
# ============================================================
def create_jwt(user: dict) -> str:
    payload = {
        "sub": user["id"], "email": user["email"], "name": user["name"],
        "role": user["role"],
        "exp": datetime.now(timezone.utc) + timedelta(hours=JWT_EXPIRY_HOURS),
        "iat": datetime.now(timezone.utc)
    }
    return pyjwt.encode(payload, JWT_SECRET, algorithm=JWT_ALGORITHM)


def decode_jwt(token: str) -> dict:
    try:
        return pyjwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except pyjwt.ExpiredSignatureError:
        raise AuthenticationError("TOKEN_EXPIRED")
    except pyjwt.InvalidTokenError:
        raise AuthenticationError("INVALID_TOKEN")

# ============================================================
# USER STORE
# ============================================================
def public_user(user: dict) -> dict:
    """Strip the password hash before a user leaves the API."""
    return {k: v for k, v in user.items() if k != "password"}


def register_user(name: str, email: str, password: str, role: str = DEFAULT_USER_ROLE) -> dict:
    email = (email or "").lower().strip()
    if not email or not password:
        raise ValidationError("EMAIL_AND_PASSWORD_REQUIRED")
    if not validate_password(password):
        raise ValidationError("PASSWORD_NOT_VALIDATED")
    if db.find_one("users", email=email):
        raise ConflictError("USER_ALREADY_REGISTERED")
    return db.create("users", {"name": (name or email.split("@")[0]).strip(), "email": email,
                               "password": hash_password(password), "role": role, "avatar": None})


def authenticate_user(email: str, password: str) -> dict:
    user = db.find_one("users", email=(email or "").lower().strip())
    if not user or not password or not verify_password(password, user["password"]):
        raise AuthenticationError("EMAIL_OR_PASSWORD_INVALID")
    return user

# ============================================================
# REQUEST HELPERS
# ============================================================
async def get_current_user(request: Request) -> dict:
    """Dependency: require a valid bearer token that maps to a stored user."""
    auth = request.headers.get("Authorization", "")
    if not auth.startswith("Bearer "):
        raise AuthenticationError("AUTHENTICATION_REQUIRED")
    payload = decode_jwt(auth[7:])
    user = db.find_by_id("users", payload["sub"])
    if not user:
        raise AuthenticationError("INVALID_TOKEN")
    return public_user(user)


async def require_admin(request: Request) -> dict:
    """Dependency: require an authenticated admin."""
    user = await get_current_user(request)
    if user.get("role") != "admin":
        raise AuthorizationError("UNAUTHORIZED")
    return user

# ============================================================
# PROJECT ACCESS
# ============================================================
def is_admin(user: dict) -> bool:
    return user.get("role") == "admin"


def is_owner(user: dict, project: dict) -> bool:
    return project.get("owner_id") == user["id"]


def get_membership(user: dict, project: dict):
    return db.find_one("project_members", project_id=project["id"], user_id=user["id"])


def require_owner(user: dict, project: dict):
    """Owner or admin only (delete project, manage members)."""
    if not (is_owner(user, project) or is_admin(user)):
        raise AuthorizationError("UNAUTHORIZED")


def require_project_permission(user: dict, project: dict, permission: str):
    """Owner, admin, or a member whose `permission` flag is set."""
    if is_owner(user, project) or is_admin(user):
        return
    member = get_membership(user, project)
    if not member or not member.get(permission):
        raise AuthorizationError("UNAUTHORIZED")


def require_creator(user: dict, expense: dict):
    if expense.get("created_by_user_id") != user["id"] and not is_admin(user):
        raise AuthorizationError("UNAUTHORIZED")
