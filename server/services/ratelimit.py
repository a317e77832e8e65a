"""
Rate limiting.

Two limiters with different scopes:

- ActionRateLimiter: in-memory sliding window per (connection, action) for
  WebSocket messages. No Redis round-trip on the hot path.
- RateLimiter: Redis fixed-window counter for the HTTP room API, shared
  across server instances. Fails open if Redis is unavailable.
"""

import hashlib
import logging
import math
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable, Optional

import redis.asyncio as redis
from fastapi import Request

from errors import RateLimitExceeded

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ActionLimit:
    """At most max_requests within window_seconds."""

    max_requests: int
    window_seconds: int
    message: str = "Too many requests"


GAME_ACTION_LIMIT = ActionLimit(30, 10, "Too many game actions")

# WebSocket action limits, per connection
ACTION_RATE_LIMITS: dict[str, ActionLimit] = {
    "lookup_room": ActionLimit(20, 60, "Too many lookup attempts"),
    "create_room": ActionLimit(5, 60, "Too many rooms created"),
    "join_room": ActionLimit(10, 60, "Too many join attempts"),
    "list_rooms": ActionLimit(30, 60, "Too many room list requests"),
    "start_game": GAME_ACTION_LIMIT,
    "play_card": GAME_ACTION_LIMIT,
    "end_turn": GAME_ACTION_LIMIT,
    "use_exception": GAME_ACTION_LIMIT,
    "end_game": GAME_ACTION_LIMIT,
    "update_settings": GAME_ACTION_LIMIT,
    "leave_room": GAME_ACTION_LIMIT,
}

# HTTP API limits: (max_requests, window_seconds)
RATE_LIMITS = {
    "api_rooms": (60, 60),
    "api_room_lookup": (20, 60),
}


class ActionRateLimiter:
    """
    In-memory sliding window limiter keyed by (connection_id, action).

    Args:
        limits: Per-action limits. Actions not listed are never limited.
        clock: Returns the current time in epoch seconds.
    """

    def __init__(
        self,
        limits: Optional[dict[str, ActionLimit]] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.limits = limits if limits is not None else ACTION_RATE_LIMITS
        self.clock = clock
        self._timestamps: dict[tuple[str, str], deque[float]] = {}

    def check(self, connection_id: str, action: str) -> None:
        """
        Record one request, or reject it.

        Rejected requests are not recorded, so a client hammering the limit
        is let back in as soon as its oldest accepted request ages out.

        Raises:
            RateLimitExceeded: If the window is already full.
        """
        limit = self.limits.get(action)
        if limit is None:
            return

        now = self.clock()
        window = self._timestamps.setdefault((connection_id, action), deque())
        cutoff = now - limit.window_seconds
        while window and window[0] <= cutoff:
            window.popleft()

        if len(window) >= limit.max_requests:
            retry_after = max(1, math.ceil(window[0] + limit.window_seconds - now))
            raise RateLimitExceeded(limit.message, retry_after)

        window.append(now)

    def forget(self, connection_id: str) -> None:
        """Drop all state for a connection (on disconnect)."""
        for key in [k for k in self._timestamps if k[0] == connection_id]:
            del self._timestamps[key]

    def tracked_connections(self) -> int:
        return len({connection_id for connection_id, _ in self._timestamps})


class RateLimiter:
    """Fixed-window request counter stored in Redis."""

    def __init__(self, redis_client: redis.Redis):
        self.redis = redis_client

    async def is_allowed(
        self,
        key: str,
        limit: int,
        window_seconds: int,
    ) -> tuple[bool, dict]:
        """
        Check if request is allowed under rate limit.

        Increments a counter for the current window and compares it to the
        limit in a single pipeline.

        Args:
            key: Unique identifier for the rate limit bucket.
            limit: Maximum requests allowed in window.
            window_seconds: Time window in seconds.

        Returns:
            Tuple of (allowed, info) where info has remaining, reset and limit.
        """
        now = int(time.time())
        window_key = f"ratelimit:{key}:{now // window_seconds}"

        try:
            async with self.redis.pipeline(transaction=True) as pipe:
                pipe.incr(window_key)
                pipe.expire(window_key, window_seconds + 1)
                results = await pipe.execute()

            current_count = results[0]
            info = {
                "remaining": max(0, limit - current_count),
                "reset": window_seconds - (now % window_seconds),
                "limit": limit,
            }

            allowed = current_count <= limit
            if not allowed:
                logger.info(f"Rate limit exceeded for {key}: {current_count}/{limit}")
            return allowed, info

        except redis.RedisError as e:
            # Fail open
            logger.error(f"Rate limiter Redis error: {e}")
            return True, {"remaining": limit, "reset": window_seconds, "limit": limit}

    def get_client_key(self, request: Request) -> str:
        """Hashed client IP, honouring reverse proxy headers."""
        client_ip = self._get_client_ip(request)
        ip_hash = hashlib.sha256(client_ip.encode()).hexdigest()[:16]
        return f"ip:{ip_hash}"

    def _get_client_ip(self, request: Request) -> str:
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            return forwarded.split(",")[0].strip()

        real_ip = request.headers.get("X-Real-IP")
        if real_ip:
            return real_ip.strip()

        if request.client:
            return request.client.host

        return "unknown"
