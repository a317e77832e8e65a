"""
Middleware components for the Up-N-Down server.

Provides:
- RateLimitMiddleware: HTTP room API rate limiting with Redis backend
"""

from .ratelimit import RateLimitMiddleware

__all__ = [
    "RateLimitMiddleware",
]
