"""
Purchase finalizer: converts a live offer into tickets.

Preconditions, each its own error:
  entry exists for this event        OfferNotFound
  entry is offered                   OfferInvalidState
  offer has not lapsed               OfferExpired
  entry belongs to the caller        OfferOwnershipMismatch
  event exists and is active         EventNotFound / EventCancelled
  ticket type exists with room       TicketTypeNotFound / InsufficientInventory

All writes happen in one transaction: the conditional decrement of the
type's `remaining`, the offered -> purchased swap on the entry (which also
re-checks expiry, so a purchase racing the expiry timer has one winner), and
one Ticket row per unit. The transaction also bumps the event version,
since moving units from held to sold changes what a concurrent join may
claim; a version conflict rolls back and retries like the other writers.
Any failure rolls everything back.

Payment is captured by the external gateway; only its reference and the
amount are recorded, split evenly across the tickets.
"""

from dataclasses import dataclass

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from ticketqueue.core import clock
from ticketqueue.core.config import get_settings
from ticketqueue.core.errors import (
    ConcurrencyConflict,
    InsufficientInventory,
    OfferExpired,
    OfferInvalidState,
    OfferNotFound,
    OfferOwnershipMismatch,
    TicketTypeNotFound,
)
from ticketqueue.core.logging import get_logger
from ticketqueue.core.metrics import record_purchase, record_retry, tickets_issued
from ticketqueue.models.ticket import Ticket, TicketStatus
from ticketqueue.models.waiting_list import WaitingListEntry, WaitingListStatus
from ticketqueue.schemas.ticket import PaymentConfirmation
from ticketqueue.services import ledger_service, waitlist_service
from ticketqueue.services.interfaces.expiry_scheduler import ExpiryScheduler

logger = get_logger(__name__)


@dataclass
class PurchaseResult:
    waiting_list_id: int
    tickets: list[Ticket]


async def _load_offer(db: AsyncSession, waiting_list_id: int, event_id: int) -> WaitingListEntry:
    entry = await db.get(WaitingListEntry, waiting_list_id, populate_existing=True)
    if not entry or entry.event_id != event_id:
        raise OfferNotFound(waiting_list_id)
    return entry


async def purchase_ticket(
    db: AsyncSession,
    scheduler: ExpiryScheduler,
    event_id: int,
    user_id: str,
    waiting_list_id: int,
    payment: PaymentConfirmation,
) -> PurchaseResult:
    settings = get_settings()
    tickets: list[Ticket] = []
    try:
        for attempt in range(1, settings.MAX_RETRY_ATTEMPTS + 1):
            entry = await _load_offer(db, waiting_list_id, event_id)

            if entry.status != WaitingListStatus.OFFERED:
                raise OfferInvalidState(waiting_list_id, entry.status)

            now = clock.now_ms()
            if (entry.offer_expires_at or 0) <= now:
                raise OfferExpired(waiting_list_id)

            if entry.user_id != user_id:
                raise OfferOwnershipMismatch(waiting_list_id)

            event = await ledger_service.load_active_event(db, event_id)
            current_version = event.version

            ticket_type_id = entry.ticket_type_id
            quantity = entry.quantity
            if ticket_type_id is not None:
                ticket_type = await ledger_service.get_ticket_type(db, event_id, ticket_type_id)
                if ticket_type is None:
                    raise TicketTypeNotFound(ticket_type_id)
                if ticket_type.remaining < quantity:
                    raise InsufficientInventory(ticket_type_id, quantity, ticket_type.remaining)
                if not await ledger_service.decrement_remaining(db, event_id, ticket_type_id, quantity):
                    await db.rollback()
                    ticket_type = await ledger_service.get_ticket_type(db, event_id, ticket_type_id)
                    remaining = ticket_type.remaining if ticket_type else 0
                    raise InsufficientInventory(ticket_type_id, quantity, remaining)

            converted = await db.execute(
                update(WaitingListEntry)
                .where(
                    WaitingListEntry.id == waiting_list_id,
                    WaitingListEntry.status == WaitingListStatus.OFFERED,
                    WaitingListEntry.offer_expires_at > now,
                )
                .values(status=WaitingListStatus.PURCHASED)
                .execution_options(synchronize_session=False)
            )
            if converted.rowcount == 0:
                # Lost the race against expiry or a concurrent purchase
                await db.rollback()
                entry = await _load_offer(db, waiting_list_id, event_id)
                if entry.status == WaitingListStatus.OFFERED:
                    raise OfferExpired(waiting_list_id)
                raise OfferInvalidState(waiting_list_id, entry.status)

            unit_amount = payment.amount / quantity
            tickets = [
                Ticket(
                    event_id=event_id,
                    user_id=user_id,
                    waiting_list_id=waiting_list_id,
                    status=TicketStatus.VALID,
                    ticket_type_id=ticket_type_id,
                    amount=unit_amount,
                    currency=payment.currency,
                    payment_reference=payment.reference,
                    purchased_at=now,
                )
                for _ in range(quantity)
            ]
            db.add_all(tickets)
            await db.flush()

            # Held units become sold; joins that read around us must retry
            if not await ledger_service.claim_event_version(db, event_id, current_version):
                await db.rollback()
                logger.info(
                    "purchase_retry",
                    event_id=event_id,
                    entry_id=waiting_list_id,
                    attempt=attempt,
                    reason="version_conflict",
                )
                record_retry("purchase")
                continue

            await db.commit()
            break
        else:
            raise ConcurrencyConflict(event_id)
    except Exception:
        await db.rollback()
        record_purchase("rejected")
        raise

    for ticket in tickets:
        await db.refresh(ticket)
        # Detached so the nudge below cannot expire what the caller returns
        db.expunge(ticket)

    record_purchase("success")
    tickets_issued.inc(quantity)
    logger.info(
        "purchase_completed",
        entry_id=waiting_list_id,
        event_id=event_id,
        user_id=user_id,
        ticket_type_id=ticket_type_id,
        quantity=quantity,
        payment_reference=payment.reference,
        amount=payment.amount,
    )

    # A purchase frees nothing, but other ticket types of the event may be waiting
    await waitlist_service.nudge_queue(db, scheduler, event_id)

    return PurchaseResult(waiting_list_id=waiting_list_id, tickets=tickets)
