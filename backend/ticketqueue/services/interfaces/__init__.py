"""
Service interfaces for dependency inversion.
Allows swapping implementations without changing business logic.
"""

from .rate_limiter import RateLimiter, RateLimitStatus
from .expiry_scheduler import ExpiryScheduler

__all__ = ['RateLimiter', 'RateLimitStatus', 'ExpiryScheduler']
