"""
Waitlist promoter: turns waiting entries into offers when capacity frees up.

Triggered after an offer expires or is released, after a purchase, after a
ticket is refunded or cancelled, and in batch by process_waitlist.

Per event:
  - entries are grouped by ticket type (None = legacy single-price)
  - each group is walked in FIFO order (created_at, id)
  - an entry is promoted only if its quantity fits both the event-level and
    the type-level free units; the walk stops at the first entry that does
    not fit, so a later, smaller request never jumps the queue
  - promotions are committed under the event version CAS, then each promoted
    entry gets its own expiry timer

Cancelled events are skipped: their waiting entries stay dormant unless
the event was cancelled under the "expire" policy (see event_service).
"""

from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ticketqueue.core import clock
from ticketqueue.core.config import get_settings
from ticketqueue.core.errors import ConcurrencyConflict, DomainError
from ticketqueue.core.logging import get_logger
from ticketqueue.core.metrics import record_retry, waitlist_promotions
from ticketqueue.models.event import Event
from ticketqueue.models.waiting_list import WaitingListEntry, WaitingListStatus
from ticketqueue.services import availability_service, ledger_service
from ticketqueue.services.interfaces.expiry_scheduler import ExpiryScheduler

logger = get_logger(__name__)


@dataclass
class PromotionPlan:
    entries: list[WaitingListEntry] = field(default_factory=list)
    skipped_groups: int = 0


async def _plan_promotions(
    db: AsyncSession,
    event: Event,
    now: int,
    max_entries: Optional[int],
) -> PromotionPlan:
    plan = PromotionPlan()

    result = await db.execute(
        select(WaitingListEntry)
        .where(
            WaitingListEntry.event_id == event.id,
            WaitingListEntry.status == WaitingListStatus.WAITING,
        )
        .order_by(WaitingListEntry.created_at.asc(), WaitingListEntry.id.asc())
        .execution_options(populate_existing=True)
    )
    waiting = list(result.scalars().all())
    if not waiting:
        return plan

    event_free = await availability_service.event_free_units(db, event, now)
    if event_free <= 0:
        return plan

    ticket_types = await ledger_service.list_ticket_types(db, event.id)
    held_by_type = await availability_service.active_offer_units_by_type(db, event.id, now)

    # Groups keep the order of their oldest entry
    groups: dict[Optional[str], list[WaitingListEntry]] = {}
    for entry in waiting:
        groups.setdefault(entry.ticket_type_id, []).append(entry)

    for ticket_type_id, group in groups.items():
        if ticket_type_id is None:
            type_free = event_free
        else:
            ticket_type = ticket_types.get(ticket_type_id)
            if ticket_type is None:
                # Inconsistent entry: skip the group, keep processing the rest
                logger.error(
                    "waitlist_ticket_type_missing",
                    event_id=event.id,
                    ticket_type_id=ticket_type_id,
                    entries=len(group),
                )
                plan.skipped_groups += 1
                continue
            type_free = max(0, ticket_type.remaining - held_by_type.get(ticket_type_id, 0))

        for entry in group:
            if max_entries is not None and len(plan.entries) >= max_entries:
                return plan
            if entry.quantity > min(event_free, type_free):
                break
            plan.entries.append(entry)
            event_free -= entry.quantity
            type_free -= entry.quantity

        if event_free <= 0:
            break

    return plan


async def promote(
    db: AsyncSession,
    scheduler: ExpiryScheduler,
    event_id: int,
    max_entries: Optional[int] = None,
) -> list[WaitingListEntry]:
    """
    Promote waiting entries of one event into offers.
    Returns the promoted entries (empty when nothing fits or the event is cancelled).
    """
    settings = get_settings()

    for attempt in range(1, settings.MAX_RETRY_ATTEMPTS + 1):
        event = await ledger_service.load_event(db, event_id)
        if event.is_cancelled:
            logger.info("waitlist_skip_cancelled_event", event_id=event_id)
            return []
        current_version = event.version

        now = clock.now_ms()
        plan = await _plan_promotions(db, event, now, max_entries)
        if not plan.entries:
            return []

        expires_at = now + settings.OFFER_DURATION_MS
        promoted: list[WaitingListEntry] = []
        for entry in plan.entries:
            result = await db.execute(
                update(WaitingListEntry)
                .where(
                    WaitingListEntry.id == entry.id,
                    WaitingListEntry.status == WaitingListStatus.WAITING,
                )
                .values(status=WaitingListStatus.OFFERED, offer_expires_at=expires_at)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 1:
                promoted.append(entry)

        if not await ledger_service.claim_event_version(db, event_id, current_version):
            logger.info("waitlist_promote_retry", event_id=event_id, attempt=attempt, reason="version_conflict")
            record_retry("promote")
            await db.rollback()
            if attempt == settings.MAX_RETRY_ATTEMPTS:
                raise ConcurrencyConflict(event_id)
            continue

        await db.commit()
        for entry in promoted:
            await db.refresh(entry)
            await scheduler.schedule(entry.id, event_id, settings.OFFER_DURATION_MS)

        if promoted:
            waitlist_promotions.inc(len(promoted))
            logger.info(
                "waitlist_promoted",
                event_id=event_id,
                promoted=len(promoted),
                entry_ids=[entry.id for entry in promoted],
                offer_expires_at=expires_at,
            )
        return promoted

    raise ConcurrencyConflict(event_id)


async def nudge_queue(db: AsyncSession, scheduler: ExpiryScheduler, event_id: int) -> list[WaitingListEntry]:
    """
    Promote after capacity may have changed, from a caller whose own work is
    already committed, so a failure here is logged and never reaches the
    caller. A conflict means another writer is active on the event; the
    maintenance sweep picks up anything left waiting.
    """
    try:
        return await promote(db, scheduler, event_id)
    except ConcurrencyConflict:
        logger.warning("waitlist_nudge_conflict", event_id=event_id)
        return []
    except (DomainError, SQLAlchemyError):
        logger.exception("waitlist_nudge_failed", event_id=event_id)
        await db.rollback()
        return []


@dataclass
class ProcessWaitlistResult:
    processed: int = 0
    promoted: int = 0
    errors: int = 0
    event_ids: list[int] = field(default_factory=list)


async def process_waitlist(
    db: AsyncSession,
    scheduler: ExpiryScheduler,
    max_entries: Optional[int] = None,
) -> ProcessWaitlistResult:
    """
    Batch promotion across every event with waiting entries.

    Bounded by `max_entries` promotions in total. Safe to run repeatedly and
    alongside live traffic: each event is promoted under its own CAS, and a
    failing event is logged and skipped.
    """
    settings = get_settings()
    budget = settings.PROCESS_WAITLIST_DEFAULT_MAX if max_entries is None else max_entries
    summary = ProcessWaitlistResult()

    result = await db.execute(
        select(WaitingListEntry.event_id, func.min(WaitingListEntry.id))
        .where(WaitingListEntry.status == WaitingListStatus.WAITING)
        .group_by(WaitingListEntry.event_id)
        .order_by(func.min(WaitingListEntry.id))
    )
    event_ids = [row[0] for row in result.all()]

    for event_id in event_ids:
        if budget <= 0:
            break
        summary.processed += 1
        try:
            promoted = await promote(db, scheduler, event_id, max_entries=budget)
        except (DomainError, SQLAlchemyError):
            logger.exception("waitlist_process_event_failed", event_id=event_id)
            await db.rollback()
            summary.errors += 1
            continue

        if promoted:
            budget -= len(promoted)
            summary.promoted += len(promoted)
            summary.event_ids.append(event_id)

    logger.info(
        "waitlist_processed",
        processed=summary.processed,
        promoted=summary.promoted,
        errors=summary.errors,
    )
    return summary
