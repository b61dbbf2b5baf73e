"""
HTTP middleware: request correlation, per-address rate limiting and a
last-resort error guard.
"""
import logging
import time
import uuid
from collections import defaultdict, deque
from typing import Callable, Deque, Dict

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

# Health checks and metric scrapes are never limited
EXEMPT_PREFIXES = ("/health", "/metrics")

RATE_LIMIT_MESSAGE = "Too many requests from this IP, please try again later."


def client_address(request: Request) -> str:
    return request.client.host if request.client else "unknown"


class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    Tag each request with an id (caller supplied or generated), time it, and
    echo both back as X-Request-ID and X-Process-Time.

    Only the method and path are logged; request bodies carry user data.
    """

    def __init__(self, app, slow_threshold: float = 1.0):
        super().__init__(app)
        self.slow_threshold = slow_threshold

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
        request.state.request_id = request_id
        started = time.perf_counter()

        response = await call_next(request)

        elapsed = time.perf_counter() - started
        response.headers["X-Request-ID"] = request_id
        response.headers["X-Process-Time"] = f"{elapsed:.4f}"

        log = logger.warning if elapsed > self.slow_threshold else logger.debug
        log(f"{request.method} {request.url.path} -> {response.status_code} in {elapsed:.3f}s [{request_id}]")
        return response


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Sliding window of `calls` requests per `period` seconds for each client
    address. The defaults allow 100 requests every 15 minutes.
    """

    def __init__(self, app, calls: int = 100, period: int = 900):
        super().__init__(app)
        self.calls = calls
        self.period = period
        self.windows: Dict[str, Deque[float]] = defaultdict(deque)

    def _admit(self, client: str) -> bool:
        """Record the request if the window has room; False when over limit."""
        window = self.windows[client]
        now = time.monotonic()
        while window and window[0] <= now - self.period:
            window.popleft()

        if len(window) >= self.calls:
            return False
        window.append(now)
        return True

    def _limit_headers(self, client: str) -> Dict[str, str]:
        return {
            "X-RateLimit-Limit": str(self.calls),
            "X-RateLimit-Remaining": str(max(self.calls - len(self.windows[client]), 0))
        }

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path.startswith(EXEMPT_PREFIXES):
            return await call_next(request)

        client = client_address(request)
        if not self._admit(client):
            logger.warning(f"Rate limit exceeded for {client}")
            return JSONResponse(
                status_code=429,
                content={"success": False, "error": RATE_LIMIT_MESSAGE},
                headers={"Retry-After": str(self.period), **self._limit_headers(client)}
            )

        response = await call_next(request)
        response.headers.update(self._limit_headers(client))
        return response


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """Catches anything that escapes the exception handlers."""

    def __init__(self, app, debug: bool = False):
        super().__init__(app)
        self.debug = debug

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        try:
            return await call_next(request)
        except Exception as e:
            request_id = getattr(request.state, "request_id", "unknown")
            logger.error(f"Unhandled error in request {request_id}: {e}", exc_info=True)

            return JSONResponse(
                status_code=500,
                content={
                    "success": False,
                    "error": str(e) if self.debug else "Internal server error",
                    "request_id": request_id
                }
            )
