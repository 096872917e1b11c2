"""
Request logging middleware.

Each request gets a correlation id (the caller's ``X-Request-ID`` or a new
one), echoed back with the processing time. The id and the rate-limit
identity are bound to the logging context so provider logs raised while
serving the request can be traced to it.
"""

from __future__ import annotations

import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from gauge.app.core.logging_config import bind_request_context, reset_request_context
from gauge.app.core.rate_limit import client_identity

logger = logging.getLogger(__name__)

# liveness probes and docs are not worth a log line each
_QUIET_PREFIXES = ("/docs", "/redoc", "/openapi", "/favicon", "/health/live")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:16]
        identity = client_identity(
            request.headers, request.client.host if request.client else None,
        )
        path = request.url.path
        token = bind_request_context(
            request_id=request_id, identity=identity, method=request.method, endpoint=path,
        )

        start = time.perf_counter()
        try:
            try:
                response = await call_next(request)
            except Exception:
                logger.error(
                    "%s %s failed after %.1fms [%s]",
                    request.method, path, (time.perf_counter() - start) * 1000, identity,
                    extra={"status_code": 500, "endpoint": path},
                )
                raise

            duration_ms = (time.perf_counter() - start) * 1000
            response.headers["X-Request-ID"] = request_id
            response.headers["X-Process-Time"] = f"{duration_ms:.1f}ms"

            if not path.startswith(_QUIET_PREFIXES):
                logger.log(
                    logging.WARNING if response.status_code >= 400 else logging.INFO,
                    "%s %s %d (%.1fms) [%s]",
                    request.method, path, response.status_code, duration_ms, identity,
                    extra={
                        "duration_ms": round(duration_ms, 1),
                        "status_code": response.status_code,
                        "endpoint": path,
                    },
                )
            return response
        finally:
            reset_request_context(token)
