"""
API error taxonomy and the JSON error envelope.

Every failure leaves the API as:

    {"error": {"code": "<STABLE_CODE>", "message": "<text>", "details": {...}}}

where ``details`` is only present for validation errors (a field -> message map).
"""

import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """Base class for errors that map onto a status code and a machine-readable code."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: str = "INTERNAL_SERVER_ERROR"
    message: str = "Internal server error"

    def __init__(
        self,
        message: Optional[str] = None,
        code: Optional[str] = None,
        details: Optional[Dict[str, str]] = None,
    ):
        self.message = message or self.message
        self.code = code or self.code
        self.details = details
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details is not None:
            payload["details"] = self.details
        return {"error": payload}


class Unauthenticated(ApiError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "UNAUTHORIZED"
    message = "Unauthorized"


class Forbidden(ApiError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "FORBIDDEN"
    message = "Forbidden"


class NotFound(ApiError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "NOT_FOUND"
    message = "Not found"


class ValidationError(ApiError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "VALIDATION_ERROR"
    message = "Validation error"

    def __init__(self, details: Dict[str, str], message: Optional[str] = None):
        super().__init__(message=message, details=details)


class Conflict(ApiError):
    """State-dependent refusal; always raised with a specific code."""

    status_code = status.HTTP_409_CONFLICT
    code = "CONFLICT"
    message = "Conflict"


class MalformedRequest(ApiError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "INVALID_JSON"
    message = "Invalid JSON body"


# Stable conflict codes
LIST_NOT_EMPTY = "LIST_NOT_EMPTY"
LIST_ARCHIVED = "LIST_ARCHIVED"
ALREADY_MEMBER = "ALREADY_MEMBER"
OWNER_MUST_TRANSFER = "OWNER_MUST_TRANSFER"
EMAIL_IN_USE = "EMAIL_IN_USE"
USER_NOT_FOUND = "USER_NOT_FOUND"


def _error_response(error: ApiError, headers: Optional[Dict[str, str]] = None) -> JSONResponse:
    return JSONResponse(status_code=error.status_code, content=error.to_dict(), headers=headers)


def request_validation_details(exc: RequestValidationError) -> Dict[str, str]:
    """Flatten FastAPI's error list into a field -> message map (first message per field wins)."""
    details: Dict[str, str] = {}
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path")]
        field = ".".join(loc) or "body"
        details.setdefault(field, err.get("msg", "Invalid value"))
    return details


def register_exception_handlers(app: FastAPI) -> None:
    """Attach the envelope-producing handlers to the application."""

    @app.exception_handler(ApiError)
    async def api_error_handler(request: Request, exc: ApiError):
        logger.debug(f"{request.method} {request.url.path} -> {exc.status_code} {exc.code}")
        headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, Unauthenticated) else None
        return _error_response(exc, headers)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        if any(err.get("type") == "json_invalid" for err in exc.errors()):
            logger.info(f"Unparseable JSON body on {request.method} {request.url.path}")
            return _error_response(MalformedRequest())

        details = request_validation_details(exc)
        logger.info(f"Request validation failed on {request.method} {request.url.path}: {details}")
        return _error_response(ValidationError(details))

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        codes = {
            status.HTTP_404_NOT_FOUND: "NOT_FOUND",
            status.HTTP_405_METHOD_NOT_ALLOWED: "METHOD_NOT_ALLOWED",
        }
        error = ApiError(message=str(exc.detail), code=codes.get(exc.status_code, "HTTP_ERROR"))
        error.status_code = exc.status_code
        return _error_response(error, getattr(exc, "headers", None))

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled exception on {request.method} {request.url.path}: {exc}", exc_info=True)
        return _error_response(ApiError())
