"""
Hairfolio Backend: Try-On Rate Limiting Middleware
===================================================

What:  Sliding-window limit on try-on starts, the only endpoints that spend
       AI generation quota.
How:   Each client IP keeps a list of request timestamps. X-Session-ID is
       client-chosen, so it is never part of the key. Timestamps older than
       the window are dropped; a full window is answered with 429 and
       Retry-After.
Who:   Applied to every request; POST .../try-on and .../color-try-on share
       one counter per client.

Algorithm: Sliding Window Counter
    1. Drop timestamps older than now - window
    2. If remaining count >= limit → 429
    3. Otherwise record now and continue

Single-process only: state lives in this middleware instance.
"""

import logging
import re
import time
from collections import defaultdict
from typing import Dict, List, Optional

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from hairfolio.config import settings
from hairfolio.exceptions import RateLimitExceededError
from hairfolio.middleware.request_id import request_id_var

logger = logging.getLogger(__name__)

TRY_ON_PATH = re.compile(r"^/api/designers/[^/]+/(color-)?try-on$")


class RateLimitMiddleware(BaseHTTPMiddleware):
    """In-memory sliding window limiter for try-on requests."""

    def __init__(
        self,
        app,
        max_requests: Optional[int] = None,
        window_seconds: Optional[int] = None,
        **kwargs,
    ):
        super().__init__(app, **kwargs)
        self.max_requests = max_requests or settings.rate_limit_requests
        self.window_seconds = window_seconds or settings.rate_limit_window
        self._requests: Dict[str, List[float]] = defaultdict(list)
        self._seen = 0

    @staticmethod
    def _client_key(request: Request) -> str:
        return getattr(request.client, "host", "unknown") if request.client else "unknown"

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if request.method != "POST" or not TRY_ON_PATH.match(request.url.path):
            return await call_next(request)

        key = self._client_key(request)
        now = time.time()
        window_start = now - self.window_seconds

        self._requests[key] = [ts for ts in self._requests[key] if ts > window_start]

        if len(self._requests[key]) >= self.max_requests:
            oldest = self._requests[key][0]
            exc = RateLimitExceededError(
                retry_after=int(oldest + self.window_seconds - now) + 1
            )
            logger.warning(
                "Try-on rate limit exceeded for %s: %d requests in %ds window",
                key,
                len(self._requests[key]),
                self.window_seconds,
            )
            # Same body as the RateLimitExceededError handler in main.py
            return JSONResponse(
                status_code=429,
                content={
                    "error": "rate_limit_exceeded",
                    "message": exc.message,
                    "details": exc.context,
                    "request_id": request_id_var.get(""),
                },
                headers={"Retry-After": str(exc.retry_after)},
            )

        self._requests[key].append(now)

        self._seen += 1
        if self._seen % 1000 == 0:
            self._cleanup_inactive(window_start)

        return await call_next(request)

    def _cleanup_inactive(self, window_start: float) -> None:
        inactive = [
            key for key, timestamps in self._requests.items()
            if not timestamps or max(timestamps) < window_start
        ]
        for key in inactive:
            del self._requests[key]
        if inactive:
            logger.debug("Cleaned up %d inactive rate-limit entries", len(inactive))
