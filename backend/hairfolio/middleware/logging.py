"""
Hairfolio Backend: Request Logging Middleware
==============================================

What:  One access-log line per request: method, path, status, duration,
       request ID, session ID and client IP.
How:   Log level follows the status class (5xx ERROR, 4xx WARNING, else
       INFO). Health checks are skipped.
Who:   Applied to every request, inside RequestIDMiddleware.

Never logged: request bodies (face photos), file contents, auth headers.
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from hairfolio.middleware.request_id import request_id_var
from hairfolio.middleware.session import SESSION_HEADER

logger = logging.getLogger("hairfolio.access")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs each HTTP request with its outcome and latency."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        start_time = time.perf_counter()

        client_ip = getattr(request.client, "host", "unknown") if request.client else "unknown"
        method = request.method
        path = request.url.path
        rid = request_id_var.get("")

        if path == "/health":
            return await call_next(request)

        response = await call_next(request)

        duration_ms = (time.perf_counter() - start_time) * 1000
        session_id = response.headers.get(SESSION_HEADER, "-")

        status = response.status_code
        if status >= 500:
            log_level = logging.ERROR
        elif status >= 400:
            log_level = logging.WARNING
        else:
            log_level = logging.INFO

        logger.log(
            log_level,
            "%s %s %d %.1fms [%s] session=%s from %s",
            method,
            path,
            status,
            duration_ms,
            rid,
            session_id[:8],
            client_ip,
            extra={
                "request_id": rid,
                "method": method,
                "path": path,
                "status": status,
                "duration_ms": round(duration_ms, 2),
                "client_ip": client_ip,
            },
        )

        return response
