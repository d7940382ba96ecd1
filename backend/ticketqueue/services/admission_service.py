"""
Admission controller: the entry point for a user who wants a ticket.

A join either grants an immediate time-boxed offer or enqueues the user as
waiting. It is the only path besides promotion that creates claims on
inventory, so the availability read and the entry insert form one
optimistic unit guarded by the event version (see ledger_service).

Order of checks:
  1. rate limit (fails fast, nothing written)
  2. one active entry per (user, event)
  3. event exists and is not cancelled, ticket type exists
  4. fresh availability
  5/6. insert offered or waiting entry, CAS the event version, commit
The expiry timer is registered only after the commit succeeds.
"""

from dataclasses import dataclass
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ticketqueue.core import clock
from ticketqueue.core.config import get_settings
from ticketqueue.core.errors import (
    AlreadyQueued,
    ConcurrencyConflict,
    EventCancelled,
    RateLimitExceeded,
    TicketTypeNotFound,
)
from ticketqueue.core.logging import get_logger
from ticketqueue.core.metrics import rate_limit_rejections, record_join, record_retry
from ticketqueue.models.waiting_list import WaitingListEntry, WaitingListStatus
from ticketqueue.services import availability_service, ledger_service
from ticketqueue.services.interfaces.expiry_scheduler import ExpiryScheduler
from ticketqueue.services.interfaces.rate_limiter import RateLimiter
from ticketqueue.services.rate_limit_service import QUEUE_JOIN_ACTION

logger = get_logger(__name__)


@dataclass(frozen=True)
class JoinResult:
    waiting_list_id: int
    status: str
    offer_expires_at: Optional[int]
    message: str


def is_active_entry(entry: WaitingListEntry, now_ms: int) -> bool:
    """
    Whether an entry blocks its user from joining again.

    Expired entries never block. An offer whose expiry has passed but whose
    timer has not fired yet no longer holds capacity, so it does not block
    either.
    """
    if entry.status == WaitingListStatus.EXPIRED:
        return False
    if entry.status == WaitingListStatus.OFFERED:
        return (entry.offer_expires_at or 0) > now_ms
    return True


async def find_active_entry(
    db: AsyncSession,
    event_id: int,
    user_id: str,
    now_ms: int,
) -> Optional[WaitingListEntry]:
    result = await db.execute(
        select(WaitingListEntry)
        .where(
            WaitingListEntry.event_id == event_id,
            WaitingListEntry.user_id == user_id,
            WaitingListEntry.status != WaitingListStatus.EXPIRED,
        )
        .order_by(WaitingListEntry.id.desc())
        .execution_options(populate_existing=True)
    )
    for entry in result.scalars().all():
        if is_active_entry(entry, now_ms):
            return entry
    return None


async def join_waiting_list(
    db: AsyncSession,
    rate_limiter: RateLimiter,
    scheduler: ExpiryScheduler,
    event_id: int,
    user_id: str,
    ticket_type_id: Optional[str] = None,
    quantity: int = 1,
) -> JoinResult:
    """
    Join the queue for an event.
    Retries up to MAX_RETRY_ATTEMPTS on event version conflicts.
    """
    settings = get_settings()

    status = await rate_limiter.limit(user_id, QUEUE_JOIN_ACTION)
    if not status.ok:
        rate_limit_rejections.labels(action=QUEUE_JOIN_ACTION).inc()
        record_join("rejected")
        logger.warning(
            "queue_join_rate_limited",
            user_id=user_id,
            event_id=event_id,
            retry_after_ms=status.retry_after_ms,
        )
        raise RateLimitExceeded(status.retry_after_ms)

    for attempt in range(1, settings.MAX_RETRY_ATTEMPTS + 1):
        now = clock.now_ms()

        existing = await find_active_entry(db, event_id, user_id, now)
        if existing:
            record_join("rejected")
            raise AlreadyQueued(event_id)

        event = await ledger_service.load_event(db, event_id)
        if event.is_cancelled:
            record_join("rejected")
            raise EventCancelled(event_id)
        current_version = event.version

        ticket_type = None
        if ticket_type_id is not None:
            ticket_type = await ledger_service.get_ticket_type(db, event_id, ticket_type_id)
            if ticket_type is None:
                record_join("rejected")
                raise TicketTypeNotFound(ticket_type_id)

        free = await availability_service.free_units_for(db, event, ticket_type, now)
        offered = free >= quantity

        entry = WaitingListEntry(
            event_id=event_id,
            user_id=user_id,
            status=WaitingListStatus.OFFERED if offered else WaitingListStatus.WAITING,
            offer_expires_at=now + settings.OFFER_DURATION_MS if offered else None,
            ticket_type_id=ticket_type_id,
            quantity=quantity,
        )
        db.add(entry)
        await db.flush()

        if not await ledger_service.claim_event_version(db, event_id, current_version):
            # Another claim on this event committed since our read
            logger.info(
                "queue_join_retry",
                event_id=event_id,
                user_id=user_id,
                attempt=attempt,
                reason="version_conflict",
            )
            record_retry("join")
            await db.rollback()
            if attempt == settings.MAX_RETRY_ATTEMPTS:
                raise ConcurrencyConflict(event_id)
            continue

        await db.commit()
        await db.refresh(entry)

        if offered:
            await scheduler.schedule(entry.id, event_id, settings.OFFER_DURATION_MS)
            record_join("offered")
            logger.info(
                "offer_granted",
                entry_id=entry.id,
                event_id=event_id,
                user_id=user_id,
                ticket_type_id=ticket_type_id,
                quantity=quantity,
                offer_expires_at=entry.offer_expires_at,
                attempt=attempt,
            )
            minutes = settings.OFFER_DURATION_MS // 60000
            message = f"Ticket offered - you have {minutes} minutes to purchase"
        else:
            record_join("waiting")
            logger.info(
                "queue_joined_waiting",
                entry_id=entry.id,
                event_id=event_id,
                user_id=user_id,
                ticket_type_id=ticket_type_id,
                quantity=quantity,
                free_units=free,
            )
            message = "Added to waiting list - you'll be notified when a ticket becomes available"

        return JoinResult(
            waiting_list_id=entry.id,
            status=entry.status,
            offer_expires_at=entry.offer_expires_at,
            message=message,
        )

    # Should not reach here, but just in case
    raise ConcurrencyConflict(event_id)
