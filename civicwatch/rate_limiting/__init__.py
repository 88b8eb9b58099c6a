"""Rate limiting module for external service calls."""

from .limiter import RateLimiter

__all__ = ["RateLimiter"]
