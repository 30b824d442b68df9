"""
Application error taxonomy.

Every error carries an HTTP status, a stable machine-readable code and a
human-readable message. Extra keyword arguments (e.g. required_permission)
are rendered alongside them by the exception handler registered in main.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse
from postgrest.exceptions import APIError

logger = logging.getLogger(__name__)

UNIQUE_VIOLATION = "23505"


class AppError(HTTPException):
    status_code: int = 500
    error_code: str = "internal_error"

    def __init__(self, message: str, code: Optional[str] = None, **extra: Any):
        super().__init__(status_code=type(self).status_code, detail=message)
        self.message = message
        if code:
            self.error_code = code
        self.extra = extra

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.error_code, "message": self.message, **self.extra}


class BadRequestError(AppError):
    status_code = 400
    error_code = "bad_request"


class UnauthorizedError(AppError):
    status_code = 401
    error_code = "unauthorized"


class ForbiddenError(AppError):
    status_code = 403
    error_code = "forbidden"


class NotFoundError(AppError):
    status_code = 404
    error_code = "not_found"


class ConflictError(AppError):
    status_code = 409
    error_code = "conflict"


class GoneError(AppError):
    status_code = 410
    error_code = "gone"


class InternalError(AppError):
    status_code = 500
    error_code = "internal_error"


def is_unique_violation(exc: Exception) -> bool:
    return isinstance(exc, APIError) and exc.code == UNIQUE_VIOLATION


def translate_api_error(exc: Exception, context: str, conflict_message: Optional[str] = None) -> AppError:
    """Map a data-service failure onto the taxonomy. Unique violations become conflicts."""
    if isinstance(exc, AppError):
        return exc
    if is_unique_violation(exc):
        return ConflictError(conflict_message or f"{context}: already exists")
    logger.error(f"{context}: {exc}")
    return InternalError(f"{context}: {exc}")


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s -> %s: %s", request.method, request.url.path, exc.error_code, exc.message)
    else:
        logger.warning("%s %s -> %s: %s", request.method, request.url.path, exc.error_code, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=exc.headers)
