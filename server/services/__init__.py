"""Services package for the Up-N-Down server."""

from .ratelimit import (
    ACTION_RATE_LIMITS,
    RATE_LIMITS,
    ActionLimit,
    ActionRateLimiter,
    RateLimiter,
)

__all__ = [
    "ACTION_RATE_LIMITS",
    "RATE_LIMITS",
    "ActionLimit",
    "ActionRateLimiter",
    "RateLimiter",
]
