"""
Offer expiry: the deferred handler and the in-process scheduler.

Each granted offer registers exactly one timer. When it fires, the handler
runs a single compare-and-swap from offered to expired, with no separate
read of the entry beforehand. If the offer already left the offered state
the swap matches no row and the firing is a no-op, so at-least-once
delivery and duplicate firings are harmless. A successful expiry nudges the promoter.

AsyncioExpiryScheduler keeps timers in the running process only. They are
lost on restart; the maintenance sweep (cleanup_expired_reservations)
reclaims any offer whose timer never fired.
"""

import asyncio
from typing import Awaitable, Callable, Optional

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ticketqueue.core import clock
from ticketqueue.core.logging import get_logger
from ticketqueue.core.metrics import pending_expiry_jobs, record_expiry
from ticketqueue.models.waiting_list import WaitingListEntry, WaitingListStatus
from ticketqueue.services import waitlist_service
from ticketqueue.services.interfaces.expiry_scheduler import ExpiryScheduler

logger = get_logger(__name__)

ExpiryHandler = Callable[[AsyncSession, int, int, ExpiryScheduler], Awaitable[bool]]


async def mark_offer_expired(db: AsyncSession, entry_id: int) -> bool:
    """offered -> expired. False if the entry is in any other state."""
    result = await db.execute(
        update(WaitingListEntry)
        .where(
            WaitingListEntry.id == entry_id,
            WaitingListEntry.status == WaitingListStatus.OFFERED,
        )
        .values(status=WaitingListStatus.EXPIRED)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def expire_offer(
    db: AsyncSession,
    entry_id: int,
    event_id: int,
    scheduler: ExpiryScheduler,
) -> bool:
    """
    Timer handler for one offer.
    Returns True if the offer was expired by this call.
    """
    expired = await mark_offer_expired(db, entry_id)
    if not expired:
        await db.rollback()
        logger.debug("offer_expiry_noop", entry_id=entry_id, event_id=event_id)
        return False

    await db.commit()
    record_expiry("timer")
    logger.info("offer_expired", entry_id=entry_id, event_id=event_id, at=clock.now_ms())

    await waitlist_service.nudge_queue(db, scheduler, event_id)
    return True


class AsyncioExpiryScheduler(ExpiryScheduler):
    """
    One asyncio task per offer; each firing runs in its own session.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        handler: Optional[ExpiryHandler] = None,
    ):
        self._session_factory = session_factory
        self._handler = handler or expire_offer
        self._tasks: set[asyncio.Task] = set()
        self._closed = False

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def schedule(self, entry_id: int, event_id: int, delay_ms: int) -> None:
        if self._closed:
            logger.warning("offer_expiry_not_scheduled", entry_id=entry_id, reason="scheduler_closed")
            return
        task = asyncio.create_task(
            self._fire_after(entry_id, event_id, delay_ms),
            name=f"expire-offer-{entry_id}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._forget)
        pending_expiry_jobs.set(len(self._tasks))

    def _forget(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        pending_expiry_jobs.set(len(self._tasks))

    async def _fire_after(self, entry_id: int, event_id: int, delay_ms: int) -> None:
        await asyncio.sleep(max(delay_ms, 0) / 1000)
        async with self._session_factory() as db:
            try:
                await self._handler(db, entry_id, event_id, self)
            except Exception:
                # The sweep retries this offer; one failed timer must not kill others
                logger.exception("offer_expiry_job_failed", entry_id=entry_id, event_id=event_id)
                await db.rollback()

    async def shutdown(self) -> None:
        self._closed = True
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
        pending_expiry_jobs.set(0)
        logger.info("offer_expiry_scheduler_stopped", cancelled=len(tasks))
