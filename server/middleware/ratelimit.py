"""
Rate limiting middleware for the HTTP room API.

Applies per-endpoint limits and adds X-RateLimit-* headers to responses.
Health and metrics endpoints are never limited.
"""

import logging
from typing import Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse, Response

from services.ratelimit import RATE_LIMITS, RateLimiter

logger = logging.getLogger(__name__)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    HTTP middleware for rate limiting the room API.

    Applies limits based on request path and adds standard
    rate limit headers to limited responses.
    """

    def __init__(self, app, rate_limiter: RateLimiter, enabled: bool = True):
        """
        Initialize rate limit middleware.

        Args:
            app: FastAPI application.
            rate_limiter: Redis-backed RateLimiter instance.
            enabled: Whether rate limiting is enabled.
        """
        super().__init__(app)
        self.limiter = rate_limiter
        self.enabled = enabled

    async def dispatch(self, request: Request, call_next) -> Response:
        """
        Process request through rate limiter.

        Args:
            request: Incoming HTTP request.
            call_next: Next middleware/handler in chain.

        Returns:
            HTTP response, or a 429 with Retry-After when over the limit.
        """
        if not self.enabled:
            return await call_next(request)

        path = request.url.path
        limit_config = self._get_limit_config(path)
        if limit_config is None:
            return await call_next(request)

        limit, window = limit_config
        full_key = f"{self._get_endpoint_key(path)}:{self.limiter.get_client_key(request)}"
        allowed, info = await self.limiter.is_allowed(full_key, limit, window)

        if allowed:
            response = await call_next(request)
        else:
            response = JSONResponse(
                status_code=429,
                content={
                    "code": "RATE_LIMITED",
                    "error": f"Too many requests. Please wait {info['reset']} seconds.",
                    "retry_after": info["reset"],
                },
            )
            response.headers["Retry-After"] = str(info["reset"])

        response.headers["X-RateLimit-Limit"] = str(info["limit"])
        response.headers["X-RateLimit-Remaining"] = str(info["remaining"])
        response.headers["X-RateLimit-Reset"] = str(info["reset"])
        return response

    def _get_limit_config(self, path: str) -> Optional[tuple[int, int]]:
        """
        Get rate limit configuration for a path.

        Args:
            path: Request URL path.

        Returns:
            Tuple of (limit, window_seconds) or None for no limiting.
        """
        path = path.rstrip("/")
        if path == "/api/rooms":
            return RATE_LIMITS["api_rooms"]
        if path.startswith("/api/rooms/"):
            return RATE_LIMITS["api_room_lookup"]
        return None

    def _get_endpoint_key(self, path: str) -> str:
        """
        Normalize path to endpoint key for rate limiting.

        Room lookups share one bucket regardless of code.

        Args:
            path: Request URL path.

        Returns:
            Bucket key for the path.
        """
        path = path.rstrip("/")
        if path.startswith("/api/rooms/"):
            return "/api/rooms/:code"
        return path or "/"
