from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pymongo.errors import DuplicateKeyError, PyMongoError
from starlette.exceptions import HTTPException as StarletteHTTPException

from smartlab.core.audit import log_error, log_security_event
from smartlab.core.logging import logger


class AppException(HTTPException):
    """HTTP error carrying a machine-readable kind and optional per-field errors."""

    kind = "INTERNAL"

    def __init__(
        self,
        status_code: int,
        detail: str,
        errors: Optional[List[Dict[str, Any]]] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        super().__init__(status_code=status_code, detail=detail, headers=headers)
        self.errors = errors


class ValidationFailedException(AppException):
    """Exception for structural or semantic input errors."""

    kind = "VALIDATION_FAILED"

    def __init__(self, detail: str = "Validation failed", errors: Optional[List[Dict[str, Any]]] = None):
        super().__init__(status.HTTP_400_BAD_REQUEST, detail, errors=errors)

    @classmethod
    def for_field(cls, field: str, message: str, value: Any = None) -> "ValidationFailedException":
        return cls(message, errors=[{"field": field, "message": message, "value": value}])


class CredentialsException(AppException):
    """Exception for invalid credentials."""

    kind = "UNAUTHENTICATED"

    def __init__(self, detail: str = "Could not validate credentials"):
        super().__init__(
            status.HTTP_401_UNAUTHORIZED,
            detail,
            headers={"WWW-Authenticate": "Bearer"},
        )


class ForbiddenException(AppException):
    """Exception for forbidden access."""

    kind = "FORBIDDEN"

    def __init__(self, detail: str = "You do not have permission to perform this action"):
        super().__init__(status.HTTP_403_FORBIDDEN, detail)


class NotFoundException(AppException):
    """Exception for resource not found."""

    kind = "NOT_FOUND"

    def __init__(self, detail: str = "Resource not found"):
        super().__init__(status.HTTP_404_NOT_FOUND, detail)


class StateConflictException(AppException):
    """Exception for a workflow transition that the current state does not allow."""

    kind = "STATE_CONFLICT"

    def __init__(self, detail: str = "The resource was modified or is not in a valid state for this action"):
        super().__init__(status.HTTP_409_CONFLICT, detail)


class DuplicateException(AppException):
    """Exception for unique constraint violations."""

    kind = "DUPLICATE"

    def __init__(self, detail: str = "Resource already exists"):
        super().__init__(status.HTTP_400_BAD_REQUEST, detail)


class RateLimitedException(AppException):
    """Exception for an exhausted rate-limit window."""

    kind = "RATE_LIMITED"

    def __init__(self, detail: str, headers: Optional[Dict[str, str]] = None):
        super().__init__(status.HTTP_429_TOO_MANY_REQUESTS, detail, headers=headers)


class UpstreamTimeoutException(AppException):
    """Exception for a database call that exceeded its deadline."""

    kind = "UPSTREAM_TIMEOUT"

    def __init__(self, detail: str = "The database did not respond in time. Please try again."):
        super().__init__(status.HTTP_503_SERVICE_UNAVAILABLE, detail)


# ============== Response rendering ==============

def error_body(message: str, errors: Optional[List[Dict[str, Any]]] = None) -> Dict[str, Any]:
    body: Dict[str, Any] = {"status": "error", "message": message}
    if errors:
        body["errors"] = errors
    return body


def _client_ip(request: Request) -> Optional[str]:
    return request.client.host if request.client else None


def _field_name(loc) -> str:
    # Drop the "body"/"query"/"path" prefix FastAPI puts in front of the field path
    parts = [str(part) for part in loc]
    if len(parts) > 1 and parts[0] in ("body", "query", "path", "header", "cookie"):
        parts = parts[1:]
    return ".".join(parts)


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    errors = getattr(exc, "errors", None)
    kind = getattr(exc, "kind", None)

    if exc.status_code in (status.HTTP_401_UNAUTHORIZED, status.HTTP_403_FORBIDDEN):
        log_security_event(
            kind or "ACCESS_DENIED",
            {"path": request.url.path, "method": request.method, "reason": exc.detail},
            user=getattr(request.state, "user", None),
            ip=_client_ip(request),
        )
    elif kind != ValidationFailedException.kind:
        logger.warning(f"{request.method} {request.url.path} -> {exc.status_code}: {exc.detail}")

    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(str(exc.detail), errors),
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {
            "field": _field_name(error.get("loc", ())),
            "message": error.get("msg", "Invalid value"),
            "value": error.get("input"),
        }
        for error in exc.errors()
    ]
    # Raw inputs may not be JSON serialisable (e.g. bytes bodies)
    for error in errors:
        if not isinstance(error["value"], (str, int, float, bool, type(None), list, dict)):
            error["value"] = str(error["value"])

    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_body("Validation failed", errors),
    )


async def duplicate_key_handler(request: Request, exc: DuplicateKeyError) -> JSONResponse:
    key = ", ".join((exc.details or {}).get("keyValue", {}).keys()) or "field"
    logger.warning(f"Duplicate key on {request.method} {request.url.path}: {key}")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_body(f"Duplicate value for {key}. Please use another value."),
    )


async def pymongo_exception_handler(request: Request, exc: PyMongoError) -> JSONResponse:
    if exc.timeout:
        logger.error(f"Database timeout on {request.method} {request.url.path}: {exc}")
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content=error_body(UpstreamTimeoutException().detail),
        )
    return await unhandled_exception_handler(request, exc)


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    log_error(exc, {"path": request.url.path, "method": request.method})
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body("Something went wrong. Please try again later."),
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Render every error as ``{status: "error", message, errors?}``."""
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(DuplicateKeyError, duplicate_key_handler)
    app.add_exception_handler(PyMongoError, pymongo_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
