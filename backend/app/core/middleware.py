"""
HTTP middleware for the Library Management API

- RequestLoggingMiddleware: request ids, timing headers and access logging
- SecurityHeadersMiddleware: browser hardening headers
- RequestSizeLimitMiddleware: rejects oversized bodies before they are read
"""

import time
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.types import ASGIApp

from app.core.exceptions import PayloadTooLargeError, error_response
from app.core.logging_config import logger, set_request_id, clear_log_context, generate_request_id

QUIET_PATHS = frozenset({"/", "/health", "/favicon.ico", "/docs", "/redoc", "/openapi.json"})

# PDFs and uploaded files are streamed and may legitimately take a while
STREAMED_PREFIXES = ("/api/v1/ebooks/", "/api/v1/files/")

SLOW_REQUEST_MS = 1000


def is_quiet(path: str) -> bool:
    return path in QUIET_PATHS or path.startswith("/api/v1/health")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Tags every request with an id (taken from X-Request-ID when the caller
    sends one) and reports it back together with X-Response-Time.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID") or generate_request_id()
        set_request_id(request_id)
        path = request.url.path
        quiet = is_quiet(path)
        started = time.perf_counter()

        if not quiet:
            logger.debug(
                f"{request.method} {path} from {request.client.host if request.client else 'unknown'}",
                extra={"event": "http_start", "user_agent": request.headers.get("user-agent", "")},
            )

        try:
            response = await call_next(request)
        except Exception as exc:
            elapsed = (time.perf_counter() - started) * 1000
            logger.log_error_with_context(exc, context=f"{request.method} {path}", duration_ms=round(elapsed, 2))
            clear_log_context()
            raise

        elapsed = (time.perf_counter() - started) * 1000
        response.headers["X-Request-ID"] = request_id
        response.headers["X-Response-Time"] = f"{elapsed:.2f}ms"

        if not quiet:
            logger.log_request(request.method, path, response.status_code, elapsed)
            if elapsed > SLOW_REQUEST_MS and not path.startswith(STREAMED_PREFIXES):
                logger.warning(f"Slow request: {request.method} {path} took {elapsed:.0f}ms")

        clear_log_context()
        return response


class SecurityHeadersMiddleware(BaseHTTPMiddleware):

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        # The reader's PDF viewer frames the ebook stream from the same origin
        embeddable = request.url.path.startswith("/api/v1/ebooks/")
        response.headers["X-Frame-Options"] = "SAMEORIGIN" if embeddable else "DENY"

        return response


class RequestSizeLimitMiddleware(BaseHTTPMiddleware):
    """Answers 413 when Content-Length exceeds max_size"""

    def __init__(self, app: ASGIApp, max_size: int = 10 * 1024 * 1024):
        super().__init__(app)
        self.max_size = max_size

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        declared = request.headers.get("content-length", "")
        if declared.isdigit() and int(declared) > self.max_size:
            logger.warning(f"Rejected {request.url.path}: body of {declared} bytes exceeds {self.max_size}")
            error = PayloadTooLargeError(
                f"Request body too large. Maximum size is {self.max_size // (1024 * 1024)}MB",
                details={"max_bytes": self.max_size},
            )
            return JSONResponse(status_code=error.status_code, content=error_response(error))

        return await call_next(request)


__all__ = [
    "RequestLoggingMiddleware",
    "SecurityHeadersMiddleware",
    "RequestSizeLimitMiddleware",
]
