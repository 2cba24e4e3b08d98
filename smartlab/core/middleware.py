"""HTTP middleware: request logging and the general API rate limit."""

import time

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from smartlab.config import settings
from smartlab.core.logging import logger
from smartlab.core.rate_limit import limit_general
from smartlab.shared.exceptions import RateLimitedException, error_body


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log one line per request with status and duration. Health checks are skipped."""

    async def dispatch(self, request: Request, call_next):
        if request.url.path == f"{settings.API_PREFIX}/health":
            return await call_next(request)

        started = time.perf_counter()
        response = await call_next(request)
        duration_ms = round((time.perf_counter() - started) * 1000, 2)

        user = getattr(request.state, "user", None)
        logger.info(
            f"{request.method} {request.url.path} {response.status_code} {duration_ms}ms",
            extra={
                "event_data": {
                    "event": "HTTP_REQUEST",
                    "method": request.method,
                    "path": request.url.path,
                    "status_code": response.status_code,
                    "duration_ms": duration_ms,
                    "ip": request.client.host if request.client else None,
                    "user_id": str(user.id) if user is not None else None,
                }
            },
        )
        return response


class GeneralRateLimitMiddleware(BaseHTTPMiddleware):
    """Apply the general per-address budget to every ``/api`` path."""

    async def dispatch(self, request: Request, call_next):
        try:
            result = limit_general(request)
        except RateLimitedException as e:
            return JSONResponse(
                status_code=e.status_code,
                content=error_body(e.detail),
                headers=e.headers,
            )

        response = await call_next(request)
        if result is not None:
            # Route-level limiters already reported their own, tighter budget
            if "RateLimit-Limit" not in response.headers:
                for header, value in result.headers.items():
                    response.headers[header] = value
        return response
