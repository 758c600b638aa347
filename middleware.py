"""
HTTP middleware: request ids, timing and access logging.
"""

import time
from typing import Callable, Set

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from logging_config import logger, set_request_id, set_phone, generate_request_id


# Paths that should skip access logging (health checks, docs, media)
SKIP_LOGGING_PATHS: Set[str] = {
    "/",
    "/favicon.ico",
    "/docs",
    "/redoc",
    "/openapi.json",
}


def should_skip_logging(path: str) -> bool:
    return path in SKIP_LOGGING_PATHS or path.startswith("/media/")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Assigns X-Request-ID and logs method, path, status and duration."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID") or generate_request_id()
        set_request_id(request_id)
        set_phone("")

        start_time = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception as exc:
            duration_ms = (time.perf_counter() - start_time) * 1000
            logger.log_error_with_context(
                exc, context=f"{request.method} {request.url.path}", duration_ms=duration_ms
            )
            raise

        duration_ms = (time.perf_counter() - start_time) * 1000
        response.headers["X-Request-ID"] = request_id

        if not should_skip_logging(request.url.path):
            logger.log_request(
                request.method,
                request.url.path,
                response.status_code,
                duration_ms,
                client_ip=request.client.host if request.client else None,
            )
        return response
