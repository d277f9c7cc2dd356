import logging
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class APIError(Exception):
    """
    Base exception for all API-related errors.
    `field` names the offending input when the failure is tied to one.
    """
    def __init__(self, message: str, status_code: int = 500, field: Optional[str] = None):
        self.message = message
        self.status_code = status_code
        self.field = field
        super().__init__(self.message)

class BadRequestError(APIError):
    def __init__(self, message: str = "Bad request.", field: Optional[str] = None, status_code: int = 400):
        super().__init__(message, status_code, field)

class UnauthorizedError(APIError):
    def __init__(self, message: str = "Unauthorized.", field: Optional[str] = None, status_code: int = 401):
        super().__init__(message, status_code, field)

class NotFoundError(APIError):
    def __init__(self, message: str = "Resource not found.", field: Optional[str] = None, status_code: int = 404):
        super().__init__(message, status_code, field)

class ConflictError(APIError):
    def __init__(self, message: str = "Resource conflict.", field: Optional[str] = None, status_code: int = 409):
        super().__init__(message, status_code, field)

class ServiceBusyError(APIError):
    """
    Raised when a counter's critical section cannot be entered in time.
    Nothing has been written when this is raised; the caller may retry.
    """
    def __init__(self, message: str = "Counter is busy, please retry.", field: Optional[str] = None, status_code: int = 503):
        super().__init__(message, status_code, field)


def error_envelope(message: str, field: Optional[str] = None) -> dict:
    error = {"message": message}
    if field:
        error["field"] = field
    return {"status": False, "message": message, "error": error}


async def api_error_handler(request: Request, exc: APIError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.warning(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=error_envelope(exc.message, exc.field))


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=error_envelope(str(exc.detail)),
        headers=getattr(exc, "headers", None),
    )


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    issues = exc.errors()
    field = None
    message = "Request validation failed."
    if issues:
        first = issues[0]
        location = [str(part) for part in first.get("loc", ()) if part not in ("body", "query", "path")]
        field = ".".join(location) or None
        message = first.get("msg", message)
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=error_envelope(message, field))


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_envelope("Unexpected server error."),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(APIError, api_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
