"""
Availability calculator.

Free capacity is always derived from fresh reads, never cached:

    event level:  total_tickets - sold units - active offer units
    type level:   remaining(type) - active offer units(type)

Sold units are tickets in {valid, used}. Active offer units are the summed
quantity of offered entries whose offer_expires_at is still in the future.
Offers hold capacity by existing, so an offer whose timer has not fired yet
but whose expiry has passed no longer counts.
"""

from dataclasses import dataclass
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ticketqueue.core import clock
from ticketqueue.core.errors import EventNotFound
from ticketqueue.models.event import Event, TicketType
from ticketqueue.models.ticket import Ticket, TicketStatus
from ticketqueue.models.waiting_list import WaitingListEntry, WaitingListStatus


@dataclass(frozen=True)
class Availability:
    event_id: int
    available: bool
    available_spots: int
    total_tickets: int
    purchased_count: int
    active_offers: int


async def count_sold(db: AsyncSession, event_id: int) -> int:
    result = await db.execute(
        select(func.count(Ticket.id)).where(
            Ticket.event_id == event_id,
            Ticket.status.in_(TicketStatus.HOLDING),
        )
    )
    return result.scalar_one()


async def count_active_offer_units(
    db: AsyncSession,
    event_id: int,
    now_ms: int,
    ticket_type_id: Optional[str] = None,
) -> int:
    query = select(func.coalesce(func.sum(WaitingListEntry.quantity), 0)).where(
        WaitingListEntry.event_id == event_id,
        WaitingListEntry.status == WaitingListStatus.OFFERED,
        WaitingListEntry.offer_expires_at > now_ms,
    )
    if ticket_type_id is not None:
        query = query.where(WaitingListEntry.ticket_type_id == ticket_type_id)
    result = await db.execute(query)
    return int(result.scalar_one())


async def active_offer_units_by_type(db: AsyncSession, event_id: int, now_ms: int) -> dict[Optional[str], int]:
    result = await db.execute(
        select(WaitingListEntry.ticket_type_id, func.sum(WaitingListEntry.quantity))
        .where(
            WaitingListEntry.event_id == event_id,
            WaitingListEntry.status == WaitingListStatus.OFFERED,
            WaitingListEntry.offer_expires_at > now_ms,
        )
        .group_by(WaitingListEntry.ticket_type_id)
    )
    return {type_id: int(units) for type_id, units in result.all()}


async def event_free_units(db: AsyncSession, event: Event, now_ms: int) -> int:
    sold = await count_sold(db, event.id)
    held = await count_active_offer_units(db, event.id, now_ms)
    return max(0, event.total_tickets - sold - held)


async def ticket_type_free_units(db: AsyncSession, ticket_type: TicketType, now_ms: int) -> int:
    held = await count_active_offer_units(db, ticket_type.event_id, now_ms, ticket_type.id)
    return max(0, ticket_type.remaining - held)


async def free_units_for(
    db: AsyncSession,
    event: Event,
    ticket_type: Optional[TicketType],
    now_ms: int,
) -> int:
    """Units a new claim may take: the tighter of the event and type limits."""
    free = await event_free_units(db, event, now_ms)
    if ticket_type is not None:
        free = min(free, await ticket_type_free_units(db, ticket_type, now_ms))
    return free


async def calculate_availability(db: AsyncSession, event_id: int) -> Availability:
    """Current availability for an event. Pure read."""
    result = await db.execute(
        select(Event).where(Event.id == event_id).execution_options(populate_existing=True)
    )
    event = result.scalar_one_or_none()
    if not event:
        raise EventNotFound(event_id)

    now = clock.now_ms()
    purchased = await count_sold(db, event_id)
    active_offers = await count_active_offer_units(db, event_id, now)
    spots = max(0, event.total_tickets - purchased - active_offers)

    return Availability(
        event_id=event_id,
        available=spots > 0,
        available_spots=spots,
        total_tickets=event.total_tickets,
        purchased_count=purchased,
        active_offers=active_offers,
    )
