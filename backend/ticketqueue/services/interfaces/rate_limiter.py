"""
Rate limiter strategy interface.
Allows swapping the backing store for per-user attempt windows.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class RateLimitStatus:
    ok: bool
    retry_after_ms: int = 0


class RateLimiter(ABC):
    """
    Fixed-window limiter: at most `rate` attempts per `period_ms` per key.

    Implementations:
    - DatabaseRateLimiter: window rows in the primary database
    - RedisRateLimiter: INCR/PEXPIRE counters, fails open on Redis errors
    """

    def __init__(self, rate: int, period_ms: int):
        self.rate = rate
        self.period_ms = period_ms

    @abstractmethod
    async def limit(self, key: str, action: str) -> RateLimitStatus:
        """
        Consume one attempt for `key` if the window has room.

        Args:
            key: Caller identity (user id)
            action: Limited action name, e.g. "queueJoin"

        Returns:
            RateLimitStatus(ok=True) if the attempt was consumed,
            RateLimitStatus(ok=False, retry_after_ms=...) otherwise.
            A rejected attempt consumes nothing.
        """
        pass
