"""
Exception handlers for the application.

GraphQL errors are reported inside the GraphQL response; these handlers cover
everything that escapes to the HTTP layer.
"""
import sqlite3
import logging

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from taskgrove.exceptions import TaskGroveError
from taskgrove.monitoring import get_request_id

logger = logging.getLogger(__name__)

STATUS_BY_CODE = {
    "UNAUTHENTICATED": 401,
    "NOT_FOUND": 404,
    "BAD_USER_INPUT": 400,
    "STORAGE_UNAVAILABLE": 503,
}


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Global exception handler for unhandled exceptions.
    """
    request_id = get_request_id() or '-'
    logger.error(
        f"Unhandled exception in {request.method} {request.url.path}: {str(exc)}",
        exc_info=True,
        extra={
            "method": request.method,
            "path": request.url.path,
            "exception_type": type(exc).__name__,
        }
    )
    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal server error",
            "detail": "An unexpected error occurred. Please try again or contact support if the issue persists.",
            "path": request.url.path,
            "method": request.method,
            "request_id": request_id
        }
    )


async def taskgrove_exception_handler(request: Request, exc: TaskGroveError) -> JSONResponse:
    """Map domain errors to HTTP status codes."""
    request_id = get_request_id() or '-'
    status_code = STATUS_BY_CODE.get(exc.code, 500)
    log = logger.error if status_code >= 500 else logger.warning
    log(
        f"{type(exc).__name__} in {request.method} {request.url.path}: {exc}",
        extra={"method": request.method, "path": request.url.path, "code": exc.code}
    )
    return JSONResponse(
        status_code=status_code,
        content={
            "error": exc.code,
            "detail": str(exc),
            "retryable": exc.retryable,
            "path": request.url.path,
            "method": request.method,
            "request_id": request_id
        }
    )


async def sqlite_exception_handler(request: Request, exc: sqlite3.Error) -> JSONResponse:
    """
    Handler for SQLite database errors.
    """
    request_id = get_request_id() or '-'
    logger.error(
        f"Database error in {request.method} {request.url.path}: {exc}",
        exc_info=True,
        extra={
            "method": request.method,
            "path": request.url.path,
            "error_type": type(exc).__name__,
        }
    )
    return JSONResponse(
        status_code=500,
        content={
            "error": "Database error",
            "detail": "A database operation failed. Please try again or contact support if the issue persists.",
            "path": request.url.path,
            "method": request.method,
            "request_id": request_id
        }
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """
    Handle request validation errors with clear messages.
    """
    request_id = get_request_id() or '-'
    errors = []
    for error in exc.errors():
        field = " -> ".join(str(loc) for loc in error["loc"])
        errors.append(f"{field}: {error['msg']}")

    logger.warning(
        f"Validation error in {request.method} {request.url.path}: {', '.join(errors)}",
        extra={"method": request.method, "path": request.url.path}
    )
    response = JSONResponse(
        status_code=422,
        content={
            "error": "Validation error",
            "detail": "One or more fields failed validation",
            "errors": errors,
            "path": request.url.path,
            "method": request.method,
            "request_id": request_id
        }
    )
    if request_id != '-':
        response.headers["X-Request-ID"] = request_id
    return response


def setup_exception_handlers(app):
    """
    Register exception handlers with the FastAPI app.
    """
    app.add_exception_handler(Exception, global_exception_handler)
    app.add_exception_handler(TaskGroveError, taskgrove_exception_handler)
    app.add_exception_handler(sqlite3.Error, sqlite_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
