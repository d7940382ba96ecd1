"""
Event service: the organizer surface the queue engine depends on.
Create, read, list, and cancel events and their ticket types.
"""

from dataclasses import dataclass
from datetime import datetime, timezone

from fastapi import HTTPException, status
from sqlalchemy import select, func, update
from sqlalchemy.ext.asyncio import AsyncSession

from ticketqueue.core.config import get_settings
from ticketqueue.core.errors import EventNotFound, InvalidTicketTypeConfig, NotEventOrganizer
from ticketqueue.core.logging import get_logger
from ticketqueue.models.event import Event, TicketType
from ticketqueue.models.ticket import Ticket, TicketStatus
from ticketqueue.models.waiting_list import WaitingListEntry, WaitingListStatus
from ticketqueue.schemas.event import EventCreate

logger = get_logger(__name__)


@dataclass
class CancelResult:
    event_id: int
    tickets_cancelled: int
    entries_expired: int
    waitlist_policy: str


def _validate_ticket_types(event_data: EventCreate) -> None:
    ids = [ticket_type.id for ticket_type in event_data.ticket_types]
    if len(ids) != len(set(ids)):
        raise InvalidTicketTypeConfig("Ticket type ids must be unique within an event")

    allocated = sum(ticket_type.quantity for ticket_type in event_data.ticket_types)
    if allocated > event_data.total_tickets:
        raise InvalidTicketTypeConfig(
            f"Ticket type quantities ({allocated}) exceed total tickets ({event_data.total_tickets})"
        )


async def create_event(db: AsyncSession, event_data: EventCreate, organizer_id: str) -> Event:
    """Create a new event with every ticket type fully available."""
    event_date = event_data.date
    if event_date.tzinfo is None:
        event_date = event_date.replace(tzinfo=timezone.utc)
    if event_date <= datetime.now(timezone.utc):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Event date must be in the future",
        )
    _validate_ticket_types(event_data)

    event = Event(
        title=event_data.title,
        description=event_data.description,
        date=event_date,
        location=event_data.location,
        organizer_id=organizer_id,
        total_tickets=event_data.total_tickets,
        price=event_data.price,
        is_cancelled=False,
        version=1,
        ticket_types=[
            TicketType(
                id=ticket_type.id,
                name=ticket_type.name,
                price=ticket_type.price,
                quantity=ticket_type.quantity,
                remaining=ticket_type.quantity,
                is_sold_out=False,
                position=position,
            )
            for position, ticket_type in enumerate(event_data.ticket_types)
        ],
    )
    db.add(event)
    await db.commit()
    await db.refresh(event)

    logger.info(
        "event_created",
        event_id=event.id,
        title=event.title,
        total_tickets=event.total_tickets,
        ticket_types=[ticket_type.id for ticket_type in event.ticket_types],
    )
    return event


async def get_event(db: AsyncSession, event_id: int) -> Event:
    """Get a single event by ID."""
    result = await db.execute(
        select(Event).where(Event.id == event_id).execution_options(populate_existing=True)
    )
    event = result.scalar_one_or_none()

    if not event:
        raise EventNotFound(event_id)
    return event


async def list_events(
    db: AsyncSession,
    page: int = 1,
    page_size: int = 20,
    upcoming_only: bool = True,
) -> tuple[list[Event], int]:
    """
    List events with pagination.
    Uses the ix_events_date index for efficient date filtering.
    """
    query = select(Event)

    if upcoming_only:
        query = query.where(Event.date >= datetime.now(timezone.utc))

    count_query = select(func.count()).select_from(query.subquery())
    total = (await db.execute(count_query)).scalar()

    events_query = (
        query
        .order_by(Event.date.asc(), Event.id.asc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    result = await db.execute(events_query)
    events = list(result.scalars().all())

    return events, total


async def cancel_event(db: AsyncSession, event_id: int, organizer_id: str) -> CancelResult:
    """
    Cancel an event.

    Valid tickets cascade to cancelled. Waiting entries follow
    CANCELLED_EVENT_WAITLIST_POLICY: "dormant" leaves them waiting (the
    promoter never touches a cancelled event), "expire" moves waiting and
    offered entries to expired. Cancelling twice is a no-op.
    """
    policy = get_settings().CANCELLED_EVENT_WAITLIST_POLICY
    event = await get_event(db, event_id)
    if event.organizer_id != organizer_id:
        raise NotEventOrganizer(event_id)
    if event.is_cancelled:
        return CancelResult(event_id, 0, 0, policy)

    await db.execute(
        update(Event)
        .where(Event.id == event_id)
        .values(is_cancelled=True, version=Event.version + 1)
        .execution_options(synchronize_session=False)
    )

    tickets = await db.execute(
        update(Ticket)
        .where(Ticket.event_id == event_id, Ticket.status == TicketStatus.VALID)
        .values(status=TicketStatus.CANCELLED)
        .execution_options(synchronize_session=False)
    )

    entries_expired = 0
    if policy == "expire":
        entries = await db.execute(
            update(WaitingListEntry)
            .where(
                WaitingListEntry.event_id == event_id,
                WaitingListEntry.status.in_((WaitingListStatus.WAITING, WaitingListStatus.OFFERED)),
            )
            .values(status=WaitingListStatus.EXPIRED)
            .execution_options(synchronize_session=False)
        )
        entries_expired = entries.rowcount

    await db.commit()

    logger.info(
        "event_cancelled",
        event_id=event_id,
        tickets_cancelled=tickets.rowcount,
        entries_expired=entries_expired,
        waitlist_policy=policy,
    )
    return CancelResult(event_id, tickets.rowcount, entries_expired, policy)
