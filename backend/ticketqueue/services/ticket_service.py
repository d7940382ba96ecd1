"""
Ticket queries and status transitions.

Allowed transitions:
    valid -> used              (check-in)
    valid | used -> refunded
    valid | used -> cancelled

Leaving {valid, used} frees a unit: it is returned to the ticket type's
`remaining` and the waitlist is nudged.
"""

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ticketqueue.core.errors import NotEventOrganizer, TicketInvalidState, TicketNotFound
from ticketqueue.core.logging import get_logger
from ticketqueue.models.ticket import Ticket, TicketStatus
from ticketqueue.services import ledger_service, waitlist_service
from ticketqueue.services.interfaces.expiry_scheduler import ExpiryScheduler

logger = get_logger(__name__)

ALLOWED_TRANSITIONS = {
    TicketStatus.VALID: {TicketStatus.USED, TicketStatus.REFUNDED, TicketStatus.CANCELLED},
    TicketStatus.USED: {TicketStatus.REFUNDED, TicketStatus.CANCELLED},
}


async def get_user_tickets(db: AsyncSession, user_id: str) -> list[Ticket]:
    """Get all tickets for a user, newest first."""
    result = await db.execute(
        select(Ticket)
        .where(Ticket.user_id == user_id)
        .order_by(Ticket.purchased_at.desc(), Ticket.id.desc())
    )
    return list(result.scalars().all())


async def update_ticket_status(
    db: AsyncSession,
    scheduler: ExpiryScheduler,
    ticket_id: int,
    new_status: str,
    organizer_id: str,
) -> Ticket:
    """Move a ticket along its lifecycle. Only the event's organizer may do this."""
    ticket = await db.get(Ticket, ticket_id, populate_existing=True)
    if not ticket:
        raise TicketNotFound(ticket_id)

    event = await ledger_service.load_event(db, ticket.event_id)
    if event.organizer_id != organizer_id:
        raise NotEventOrganizer(event.id)

    current = ticket.status
    if new_status not in ALLOWED_TRANSITIONS.get(current, set()):
        raise TicketInvalidState(ticket_id, current, new_status)

    result = await db.execute(
        update(Ticket)
        .where(Ticket.id == ticket_id, Ticket.status == current)
        .values(status=new_status)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        await db.rollback()
        await db.refresh(ticket)
        raise TicketInvalidState(ticket_id, ticket.status, new_status)

    frees_capacity = new_status not in TicketStatus.HOLDING
    if frees_capacity and ticket.ticket_type_id is not None:
        if not await ledger_service.restore_remaining(db, ticket.event_id, ticket.ticket_type_id):
            logger.error(
                "ticket_type_restore_skipped",
                ticket_id=ticket_id,
                event_id=ticket.event_id,
                ticket_type_id=ticket.ticket_type_id,
            )

    await db.commit()
    await db.refresh(ticket)
    logger.info(
        "ticket_status_updated",
        ticket_id=ticket_id,
        event_id=ticket.event_id,
        from_status=current,
        to_status=new_status,
    )

    event_id = ticket.event_id
    db.expunge(ticket)
    if frees_capacity and not event.is_cancelled:
        await waitlist_service.nudge_queue(db, scheduler, event_id)
    return ticket
