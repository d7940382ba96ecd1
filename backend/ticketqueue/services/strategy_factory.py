"""
Backend factory for the queue engine's pluggable collaborators.

- Rate limiter: RATE_LIMIT_BACKEND selects the database (default) or the
  Redis fixed-window implementation. Redis falls back to the database
  backend when the server is unreachable at request time.
- Expiry scheduler: one process-wide AsyncioExpiryScheduler.
"""

from typing import Optional

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ticketqueue.core.config import get_settings
from ticketqueue.core.logging import get_logger
from ticketqueue.db.session import get_db, get_session_factory
from ticketqueue.infrastructure.redis_client import get_redis
from ticketqueue.services.expiry_service import AsyncioExpiryScheduler
from ticketqueue.services.interfaces.expiry_scheduler import ExpiryScheduler
from ticketqueue.services.interfaces.rate_limiter import RateLimiter
from ticketqueue.services.rate_limit_service import DatabaseRateLimiter, RedisRateLimiter

logger = get_logger(__name__)


async def get_rate_limiter(db: AsyncSession = Depends(get_db)) -> RateLimiter:
    """Queue-join limiter, per RATE_LIMIT_BACKEND."""
    settings = get_settings()
    rate, period_ms = settings.QUEUE_JOIN_RATE_LIMIT, settings.QUEUE_JOIN_RATE_WINDOW_MS

    if settings.RATE_LIMIT_BACKEND == "redis":
        client = await get_redis()
        if client is not None:
            return RedisRateLimiter(rate, period_ms)
        logger.warning("rate_limiter_fallback", backend="database", reason="redis_unavailable")

    return DatabaseRateLimiter(db, rate, period_ms)


# Singleton instance
_scheduler: Optional[ExpiryScheduler] = None


def get_expiry_scheduler() -> ExpiryScheduler:
    """Get expiry scheduler singleton."""
    global _scheduler
    if _scheduler is None:
        _scheduler = AsyncioExpiryScheduler(get_session_factory())
    return _scheduler


def reset_expiry_scheduler() -> None:
    global _scheduler
    _scheduler = None
