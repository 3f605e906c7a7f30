"""
Domain errors and their HTTP translation.

Services raise ApiError (or a subclass); the handlers registered by
register_exception_handlers() turn them into JSON responses.
"""
import logging
from typing import List, Optional, Dict

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """Expected failure carrying an HTTP status code and optional field errors."""

    def __init__(self, status_code: int, message: str, errors: Optional[List[Dict[str, str]]] = None):
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.errors = errors


class BadRequestError(ApiError):
    def __init__(self, message: str = "Bad request", errors: Optional[List[Dict[str, str]]] = None):
        super().__init__(status.HTTP_400_BAD_REQUEST, message, errors)


class UnauthorizedError(ApiError):
    def __init__(self, message: str = "Unauthorized", errors: Optional[List[Dict[str, str]]] = None):
        super().__init__(status.HTTP_401_UNAUTHORIZED, message, errors)


class ForbiddenError(ApiError):
    def __init__(self, message: str = "Forbidden", errors: Optional[List[Dict[str, str]]] = None):
        super().__init__(status.HTTP_403_FORBIDDEN, message, errors)


class NotFoundError(ApiError):
    def __init__(self, message: str = "Resource not found", errors: Optional[List[Dict[str, str]]] = None):
        super().__init__(status.HTTP_404_NOT_FOUND, message, errors)


class ConflictError(ApiError):
    def __init__(self, message: str = "Conflict", errors: Optional[List[Dict[str, str]]] = None):
        super().__init__(status.HTTP_409_CONFLICT, message, errors)


def _field_errors(exc: RequestValidationError) -> List[Dict[str, str]]:
    errors = []
    for err in exc.errors():
        # Drop the leading "body"/"query"/"path" segment
        loc = [str(part) for part in err.get("loc", ())[1:]]
        errors.append({"field": ".".join(loc), "message": err.get("msg", "Invalid value")})
    return errors


def register_exception_handlers(app: FastAPI) -> None:
    """Attach the domain, validation, integrity and fallback handlers."""

    @app.exception_handler(ApiError)
    async def api_error_handler(request: Request, exc: ApiError):
        if exc.status_code >= 500:
            logger.error(f"API error on {request.method} {request.url.path}: {exc.message}")
        return JSONResponse(
            status_code=exc.status_code,
            content={"message": exc.message, "errors": exc.errors},
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"message": "Validation error", "errors": _field_errors(exc)},
        )

    @app.exception_handler(IntegrityError)
    async def integrity_error_handler(request: Request, exc: IntegrityError):
        logger.warning(f"Integrity error on {request.method} {request.url.path}: {exc.orig}")
        return JSONResponse(
            status_code=status.HTTP_409_CONFLICT,
            content={"message": "Conflict", "errors": None},
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=exc)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"message": "Internal server error"},
        )
