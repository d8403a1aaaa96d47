"""
FastAPI Rate Limiting Middleware using a fixed window per client

Every client IP gets a fixed number of requests per window on the
protected path prefixes. Requests outside those prefixes are not counted.
"""

import time
import logging
from typing import Callable, Dict, Optional, Sequence
from threading import Lock
from fastapi import FastAPI, Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse


logger = logging.getLogger(__name__)

RATE_LIMIT_MESSAGE = "Too many requests from this IP, please try again later."


class RequestWindow:
    """
    Request counter for one client over a fixed time window.

    The counter resets once `window_seconds` have elapsed since the
    window was opened.
    """

    def __init__(self, max_requests: int, window_seconds: float):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.started_at = time.monotonic()
        self.count = 0
        self.lock = Lock()

    def _roll(self, now: float) -> None:
        if now - self.started_at >= self.window_seconds:
            self.started_at = now
            self.count = 0

    def hit(self) -> bool:
        """
        Count a request against the window.

        Returns:
            True if the request is within the allowance, False otherwise
        """
        with self.lock:
            self._roll(time.monotonic())
            if self.count >= self.max_requests:
                return False
            self.count += 1
            return True

    def remaining(self) -> int:
        with self.lock:
            self._roll(time.monotonic())
            return max(self.max_requests - self.count, 0)

    def reset_in(self) -> int:
        """Seconds until the window resets, rounded up."""
        with self.lock:
            elapsed = time.monotonic() - self.started_at
            return max(int(self.window_seconds - elapsed) + 1, 1)

    def expired(self, now: float) -> bool:
        return now - self.started_at >= self.window_seconds


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    FastAPI middleware limiting how many requests each client IP may make
    within a fixed window.
    """

    def __init__(
        self,
        app: FastAPI,
        max_requests: int = 100,
        window_seconds: float = 15 * 60,
        path_prefixes: Optional[Sequence[str]] = ("/api/",),
        cleanup_interval: int = 3600,
        trusted_proxies: Optional[Sequence[str]] = ("127.0.0.1",),
    ):
        """
        Initialize the rate limiting middleware.

        Args:
            app: FastAPI application instance
            max_requests: Requests allowed per client per window (default: 100)
            window_seconds: Length of the window in seconds (default: 15 minutes)
            path_prefixes: Only paths starting with one of these are limited (default: /api/)
            cleanup_interval: Interval in seconds to drop expired windows (default: 3600)
            trusted_proxies: Peers whose X-Forwarded-For header is believed (default: 127.0.0.1)
        """
        super().__init__(app)

        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.path_prefixes = tuple(path_prefixes or ())
        self.cleanup_interval = cleanup_interval
        self.trusted_proxies = frozenset(trusted_proxies or ())

        self.windows: Dict[str, RequestWindow] = {}
        self.windows_lock = Lock()
        self.last_cleanup = time.monotonic()

        logger.info(
            f"Rate limiter initialized: {max_requests} requests per {window_seconds:.0f}s "
            f"on {', '.join(self.path_prefixes) or 'all paths'}"
        )

    def _get_client_identifier(self, request: Request) -> str:
        """
        Extract client identifier from the request.

        Uses the X-Forwarded-For header only when the direct peer is a
        trusted proxy, otherwise the direct client IP.
        """
        peer = request.client.host if request.client else "unknown"

        forwarded_for = request.headers.get("X-Forwarded-For")
        if forwarded_for and peer in self.trusted_proxies:
            # X-Forwarded-For can contain multiple IPs, take the first one
            return forwarded_for.split(",")[0].strip()

        return peer

    def _get_or_create_window(self, client_id: str) -> RequestWindow:
        with self.windows_lock:
            if client_id not in self.windows:
                self.windows[client_id] = RequestWindow(self.max_requests, self.window_seconds)
                logger.debug(f"Opened new rate limit window for client: {client_id}")

            return self.windows[client_id]

    def _cleanup_expired_windows(self) -> None:
        now = time.monotonic()

        if now - self.last_cleanup < self.cleanup_interval:
            return

        with self.windows_lock:
            to_remove = [
                client_id
                for client_id, window in self.windows.items()
                if window.expired(now)
            ]

            for client_id in to_remove:
                del self.windows[client_id]

            if to_remove:
                logger.info(f"Cleaned up {len(to_remove)} expired rate limit windows")

            self.last_cleanup = now

    def _is_limited_path(self, path: str) -> bool:
        if not self.path_prefixes:
            return True
        return path.startswith(self.path_prefixes)

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if not self._is_limited_path(request.url.path):
            return await call_next(request)

        self._cleanup_expired_windows()

        client_id = self._get_client_identifier(request)
        window = self._get_or_create_window(client_id)

        if not window.hit():
            logger.warning(f"Rate limit exceeded for {client_id} on {request.url.path}")
            retry_after = window.reset_in()

            return JSONResponse(
                status_code=429,
                content={"success": False, "message": RATE_LIMIT_MESSAGE},
                headers={
                    "X-RateLimit-Limit": str(self.max_requests),
                    "X-RateLimit-Remaining": "0",
                    "Retry-After": str(retry_after),
                },
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(self.max_requests)
        response.headers["X-RateLimit-Remaining"] = str(window.remaining())

        return response
