"""
Fixed-window rate limiters for the "queueJoin" action.

Database backend (default):
  One row per (key, action) holding window_start and count. Every change is
  a conditional UPDATE on the values just read, so two concurrent attempts
  by the same user cannot both take the last slot. The consumed attempt is
  committed immediately: it counts even if the join itself is later
  rejected (already queued, event cancelled, ...).

Redis backend:
  INCR + PEXPIRE on ratelimit:{action}:{key}. Like the admission gate it
  fails open when Redis is unreachable; the database-side inventory
  invariants do not depend on it.
"""

import redis.asyncio as redis
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ticketqueue.core import clock
from ticketqueue.core.logging import get_logger
from ticketqueue.core.metrics import redis_connection_errors
from ticketqueue.infrastructure.redis_client import get_redis
from ticketqueue.models.rate_limit import RateLimitWindow
from ticketqueue.services.interfaces.rate_limiter import RateLimiter, RateLimitStatus

logger = get_logger(__name__)

QUEUE_JOIN_ACTION = "queueJoin"
MAX_WINDOW_UPDATE_ATTEMPTS = 3


class DatabaseRateLimiter(RateLimiter):

    def __init__(self, db: AsyncSession, rate: int, period_ms: int):
        super().__init__(rate, period_ms)
        self.db = db

    async def limit(self, key: str, action: str) -> RateLimitStatus:
        for attempt in range(1, MAX_WINDOW_UPDATE_ATTEMPTS + 1):
            now = clock.now_ms()
            window = await self.db.get(RateLimitWindow, (key, action), populate_existing=True)

            if window is None:
                self.db.add(RateLimitWindow(key=key, action=action, window_start=now, count=1))
                try:
                    await self.db.commit()
                except IntegrityError:
                    # Another attempt created the window first
                    await self.db.rollback()
                    continue
                return RateLimitStatus(ok=True)

            if now - window.window_start >= self.period_ms:
                stmt = (
                    update(RateLimitWindow)
                    .where(
                        RateLimitWindow.key == key,
                        RateLimitWindow.action == action,
                        RateLimitWindow.window_start == window.window_start,
                    )
                    .values(window_start=now, count=1)
                )
            elif window.count >= self.rate:
                retry_after = window.window_start + self.period_ms - now
                return RateLimitStatus(ok=False, retry_after_ms=max(retry_after, 1))
            else:
                stmt = (
                    update(RateLimitWindow)
                    .where(
                        RateLimitWindow.key == key,
                        RateLimitWindow.action == action,
                        RateLimitWindow.window_start == window.window_start,
                        RateLimitWindow.count == window.count,
                    )
                    .values(count=RateLimitWindow.count + 1)
                )

            result = await self.db.execute(stmt.execution_options(synchronize_session=False))
            if result.rowcount == 0:
                await self.db.rollback()
                logger.info("rate_limit_retry", key=key, action=action, attempt=attempt)
                continue

            await self.db.commit()
            return RateLimitStatus(ok=True)

        logger.warning("rate_limit_contended", key=key, action=action)
        return RateLimitStatus(ok=True)


class RedisRateLimiter(RateLimiter):

    async def limit(self, key: str, action: str) -> RateLimitStatus:
        client = await get_redis()
        if client is None:
            return RateLimitStatus(ok=True)

        redis_key = f"ratelimit:{action}:{key}"
        try:
            count = await client.incr(redis_key)
            ttl = await client.pttl(redis_key)
            if count == 1 or ttl < 0:
                await client.pexpire(redis_key, self.period_ms)
                ttl = self.period_ms

            if count > self.rate:
                # Rejected attempts do not consume the window
                await client.decr(redis_key)
                return RateLimitStatus(ok=False, retry_after_ms=max(ttl, 1))
            return RateLimitStatus(ok=True)
        except redis.RedisError as e:
            redis_connection_errors.inc()
            logger.error("rate_limit_redis_error", key=key, action=action, error=str(e))
            return RateLimitStatus(ok=True)
