# =============================================================================================
# MASTERYMAP/CORE/ERRORS.PY - CLOSED ERROR TAXONOMY + HTTP MAPPING
# =============================================================================================
# Every failure in the auth flows is raised as one of these at the point it
# happens. register_exception_handlers() turns them into JSON responses:
#
#   {"detail": "<safe message>", "code": "<stable code>"}
#
# Anything else (store errors, bugs) becomes a generic 500; its text and
# stack trace go to the server log only.
# =============================================================================================

import logging

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)


class AuthError(Exception):
    """Base class: carries the HTTP status, a stable code and a client-safe message."""

    status_code: int = status.HTTP_400_BAD_REQUEST
    code: str = "error"
    default_message: str = "Request failed"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(AuthError):
    """Malformed request payload (400)."""

    status_code = status.HTTP_400_BAD_REQUEST
    code = "validation_error"
    default_message = "Request validation failed"


class UnauthenticatedError(AuthError):
    """Missing, malformed, expired or otherwise unverifiable credentials (401)."""

    status_code = status.HTTP_401_UNAUTHORIZED
    code = "unauthorized"
    default_message = "Not authenticated"


class ForbiddenError(AuthError):
    """Authenticated, but role or tenant doesn't allow this (403)."""

    status_code = status.HTTP_403_FORBIDDEN
    code = "forbidden"
    default_message = "Forbidden"


class NotFoundError(AuthError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"
    default_message = "Not found"


class ConflictError(AuthError):
    """Registration against an identity that already exists (409)."""

    status_code = status.HTTP_409_CONFLICT
    code = "conflict"
    default_message = "Already exists"


def _error_response(status_code: int, code: str, message: str, **extra) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"detail": message, "code": code, **extra},
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Install the taxonomy → HTTP mapping on an app."""

    @app.exception_handler(AuthError)
    async def handle_auth_error(request: Request, exc: AuthError):
        logger.info(
            "%s %s → %s (%s)", request.method, request.url.path, exc.status_code, exc.code
        )
        return _error_response(exc.status_code, exc.code, exc.message)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        logger.info("%s %s → 400 (validation_error)", request.method, request.url.path)
        errors = [
            {"loc": err.get("loc"), "msg": err.get("msg"), "type": err.get("type")}
            for err in exc.errors()
        ]
        return _error_response(
            status.HTTP_400_BAD_REQUEST,
            ValidationError.code,
            ValidationError.default_message,
            errors=jsonable_encoder(errors),
        )

    @app.exception_handler(SQLAlchemyError)
    async def handle_store_error(request: Request, exc: SQLAlchemyError):
        logger.exception("Store error during %s %s", request.method, request.url.path)
        return _error_response(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "internal_error",
            "Internal server error",
        )
