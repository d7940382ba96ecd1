"""
Maintenance: the durability backstop for in-process expiry timers.

cleanup_expired_reservations expires every offer whose deadline has passed
(whether or not its timer fired), then nudges each affected event.
MaintenanceWorker runs cleanup and process_waitlist on an interval.
"""

import asyncio
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ticketqueue.core import clock
from ticketqueue.core.config import get_settings
from ticketqueue.core.errors import DomainError
from ticketqueue.core.logging import get_logger
from ticketqueue.core.metrics import record_expiry
from ticketqueue.models.waiting_list import WaitingListEntry, WaitingListStatus
from ticketqueue.services import waitlist_service
from ticketqueue.services.interfaces.expiry_scheduler import ExpiryScheduler

logger = get_logger(__name__)


@dataclass
class CleanupSummary:
    processed: int = 0
    errors: int = 0
    events: list[int] = field(default_factory=list)


async def cleanup_expired_reservations(db: AsyncSession, scheduler: ExpiryScheduler) -> CleanupSummary:
    """Expire lapsed offers, one commit per event, then promote the next in line."""
    now = clock.now_ms()
    summary = CleanupSummary()

    result = await db.execute(
        select(WaitingListEntry.id, WaitingListEntry.event_id)
        .where(
            WaitingListEntry.status == WaitingListStatus.OFFERED,
            WaitingListEntry.offer_expires_at <= now,
        )
        .order_by(WaitingListEntry.id)
    )
    by_event: dict[int, list[int]] = defaultdict(list)
    for entry_id, event_id in result.all():
        by_event[event_id].append(entry_id)

    for event_id, entry_ids in by_event.items():
        try:
            expired = await db.execute(
                update(WaitingListEntry)
                .where(
                    WaitingListEntry.id.in_(entry_ids),
                    WaitingListEntry.status == WaitingListStatus.OFFERED,
                    WaitingListEntry.offer_expires_at <= now,
                )
                .values(status=WaitingListStatus.EXPIRED)
                .execution_options(synchronize_session=False)
            )
            await db.commit()
        except SQLAlchemyError:
            logger.exception("cleanup_event_failed", event_id=event_id)
            await db.rollback()
            summary.errors += 1
            continue

        # Purchases or timers may have won some of these rows in between
        if expired.rowcount:
            summary.processed += expired.rowcount
            summary.events.append(event_id)
            record_expiry("sweep", expired.rowcount)
            logger.info("offers_swept", event_id=event_id, expired=expired.rowcount)

        try:
            await waitlist_service.nudge_queue(db, scheduler, event_id)
        except (DomainError, SQLAlchemyError):
            logger.exception("cleanup_promote_failed", event_id=event_id)
            await db.rollback()
            summary.errors += 1

    logger.info(
        "cleanup_completed",
        processed=summary.processed,
        errors=summary.errors,
        events=len(summary.events),
    )
    return summary


class MaintenanceWorker:
    """Runs cleanup and batch promotion every `interval` seconds."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        scheduler: ExpiryScheduler,
        interval: Optional[float] = None,
        max_entries: Optional[int] = None,
    ):
        settings = get_settings()
        self._session_factory = session_factory
        self._scheduler = scheduler
        self.interval = settings.CLEANUP_INTERVAL_SECONDS if interval is None else interval
        self.max_entries = max_entries
        self._running = False

    async def run_forever(self) -> None:
        self._running = True
        logger.info("maintenance_worker_started", interval=self.interval)
        while self._running:
            try:
                await self.process_once()
            except Exception:
                logger.exception("maintenance_cycle_failed")
            await asyncio.sleep(self.interval)

    def stop(self) -> None:
        self._running = False

    async def process_once(self) -> tuple[CleanupSummary, waitlist_service.ProcessWaitlistResult]:
        async with self._session_factory() as db:
            cleanup = await cleanup_expired_reservations(db, self._scheduler)
            promoted = await waitlist_service.process_waitlist(db, self._scheduler, self.max_entries)
        return cleanup, promoted
