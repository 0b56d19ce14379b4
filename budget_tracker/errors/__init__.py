"""
Budget Tracker — Errors & Observability

Error taxonomy surfaced by the API as {"ok": false, "code": ...}:
  ValidationError      400 — missing / invalid field
  AuthenticationError  401 — missing / invalid bearer token
  AuthorizationError   403 — actor lacks ownership or role
  NotFoundError        404 — referenced entity absent
  ConflictError        409 — uniqueness violated
  ServerError          500 — anything unexpected (captured)

Notification and digest failures never reach these handlers: they are caught
at their own boundary and only logged + captured.
"""
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from fastapi.responses import JSONResponse

from budget_tracker.config import LOG_LEVEL

logger = logging.getLogger(__name__)
capture_logger = logging.getLogger("budget_tracker.capture")

SERVER_ERROR = "SERVER_ERROR"


# ============================================================
# EXCEPTIONS
# ============================================================
class AppError(Exception):
    status_code = 500
    default_code = SERVER_ERROR

    def __init__(self, code: str = None, message: str = None):
        self.code = code or self.default_code
        super().__init__(message or self.code)


class ValidationError(AppError):
    status_code = 400
    default_code = "VALIDATION_ERROR"


class AuthenticationError(AppError):
    status_code = 401
    default_code = "AUTHENTICATION_REQUIRED"


class AuthorizationError(AppError):
    status_code = 403
    default_code = "UNAUTHORIZED"


class NotFoundError(AppError):
    status_code = 404
    default_code = "NOT_FOUND"


class ConflictError(AppError):
    status_code = 409
    default_code = "CONFLICT"


class ServerError(AppError):
    status_code = 500
    default_code = SERVER_ERROR


class EmailTransportError(Exception):
    """Raised by the email transport when a message could not be delivered."""

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.status_code = status_code


# ============================================================
# OBSERVABILITY
# ============================================================
def configure_logging(level: str = None):
    """Apply the process-wide log format and level. Safe to call twice."""
    logging.basicConfig(
        level=getattr(logging, (level or LOG_LEVEL), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s")


def capture(error: BaseException, **context):
    """Report an unexpected error to the observability sink."""
    extra = " ".join(f"{k}={v}" for k, v in context.items())
    capture_logger.error("Captured %s: %s %s", type(error).__name__, error, extra,
                         exc_info=(type(error), error, error.__traceback__))


# ============================================================
# API HANDLERS
# ============================================================
def _error_response(status_code: int, code: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"ok": False, "code": code})


def register_error_handlers(app: FastAPI):
    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        if exc.status_code >= 500:
            capture(exc, path=request.url.path)
        return _error_response(exc.status_code, exc.code)

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        code = exc.detail if isinstance(exc.detail, str) else "HTTP_ERROR"
        return _error_response(exc.status_code, code.upper().replace(" ", "_"))

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return _error_response(400, ValidationError.default_code)

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        capture(exc, path=request.url.path)
        return _error_response(500, SERVER_ERROR)
