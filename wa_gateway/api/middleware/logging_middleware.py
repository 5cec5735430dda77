"""
Request logging middleware.

One line per request in and one per response out, tagged with a short
correlation id (taken from `X-Correlation-ID` when the caller sends one) and
the tenant header. Health checks are passed through unlogged.
"""

import logging
import time
import uuid
from collections.abc import Awaitable, Callable

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response
from starlette.types import ASGIApp

logger = logging.getLogger(__name__)

CORRELATION_HEADER = "X-Correlation-ID"
TIMING_HEADER = "X-Response-Time-Ms"

QUIET_PATHS = frozenset({"/health", "/favicon.ico"})


def client_address(request: Request) -> str:
    forwarded = request.headers.get("X-Forwarded-For", "")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Correlation id, tenant-tagged access log and response timing."""

    def __init__(self, app: ASGIApp, tenant_header: str = "X-Tenant-ID") -> None:
        super().__init__(app)
        self._tenant_header = tenant_header

    async def dispatch(self, request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
        correlation_id = request.headers.get(CORRELATION_HEADER) or uuid.uuid4().hex[:8]
        request.state.correlation_id = correlation_id

        if request.url.path in QUIET_PATHS:
            response = await call_next(request)
            response.headers[CORRELATION_HEADER] = correlation_id
            return response

        label = f"[{correlation_id}] {request.method} {request.url.path}"
        tenant = request.headers.get(self._tenant_header, "-")
        logger.info(f"{label} tenant={tenant} client={client_address(request)}")

        started = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(f"{label} failed after {(time.perf_counter() - started) * 1000:.1f}ms: {e}")
            raise

        elapsed_ms = (time.perf_counter() - started) * 1000
        level = logging.WARNING if response.status_code >= 400 else logging.INFO
        logger.log(level, f"{label} -> {response.status_code} ({elapsed_ms:.1f}ms)")

        response.headers[CORRELATION_HEADER] = correlation_id
        response.headers[TIMING_HEADER] = f"{elapsed_ms:.2f}"
        return response
