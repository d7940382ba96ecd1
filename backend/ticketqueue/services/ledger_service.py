"""
Inventory ledger: authoritative reads and conditional writes.

CONCURRENCY STRATEGY: Optimistic Locking with Retry
====================================================

Problem:
  Two users join the same event at the same moment. Both read
  "1 spot free", both insert an offer. Result: over-allocation.

Solution:
  Every operation that creates a claim (join, promotion) reads the event's
  `version` together with availability, writes its claim, then

    UPDATE events SET version = version + 1
    WHERE id = :event_id AND version = :version_read

  If rows_affected == 0 another claim was committed in between: the caller
  rolls back and recomputes availability from scratch. The row lock taken by
  the UPDATE also serializes claim writers on PostgreSQL until commit.

  `ticket_types.remaining` is only ever changed with a conditional UPDATE
  (`remaining >= quantity` to sell, `remaining + quantity <= quantity` to
  return), so the CHECK constraints are never the first line of defence.
"""

from typing import Optional

from sqlalchemy import case, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ticketqueue.core.errors import EventCancelled, EventNotFound
from ticketqueue.models.event import Event, TicketType


async def load_event(db: AsyncSession, event_id: int) -> Event:
    """Fresh read of an event; raises EventNotFound."""
    result = await db.execute(
        select(Event)
        .where(Event.id == event_id)
        .execution_options(populate_existing=True)
    )
    event = result.scalar_one_or_none()
    if not event:
        raise EventNotFound(event_id)
    return event


async def load_active_event(db: AsyncSession, event_id: int) -> Event:
    event = await load_event(db, event_id)
    if event.is_cancelled:
        raise EventCancelled(event_id)
    return event


async def get_ticket_type(db: AsyncSession, event_id: int, ticket_type_id: str) -> Optional[TicketType]:
    result = await db.execute(
        select(TicketType)
        .where(TicketType.event_id == event_id, TicketType.id == ticket_type_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def list_ticket_types(db: AsyncSession, event_id: int) -> dict[str, TicketType]:
    result = await db.execute(
        select(TicketType)
        .where(TicketType.event_id == event_id)
        .execution_options(populate_existing=True)
    )
    return {ticket_type.id: ticket_type for ticket_type in result.scalars().all()}


async def claim_event_version(db: AsyncSession, event_id: int, expected_version: int) -> bool:
    """Compare-and-swap on the event version. False means a concurrent claim won."""
    result = await db.execute(
        update(Event)
        .where(Event.id == event_id, Event.version == expected_version)
        .values(version=Event.version + 1)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def decrement_remaining(db: AsyncSession, event_id: int, ticket_type_id: str, quantity: int) -> bool:
    """Sell `quantity` units of a type. False if fewer than `quantity` remain."""
    result = await db.execute(
        update(TicketType)
        .where(
            TicketType.event_id == event_id,
            TicketType.id == ticket_type_id,
            TicketType.remaining >= quantity,
        )
        .values(
            remaining=TicketType.remaining - quantity,
            is_sold_out=case((TicketType.remaining - quantity <= 0, True), else_=False),
        )
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def restore_remaining(db: AsyncSession, event_id: int, ticket_type_id: str, quantity: int = 1) -> bool:
    """Return sold units to a type (refund/cancellation). Never exceeds quantity."""
    result = await db.execute(
        update(TicketType)
        .where(
            TicketType.event_id == event_id,
            TicketType.id == ticket_type_id,
            TicketType.remaining + quantity <= TicketType.quantity,
        )
        .values(remaining=TicketType.remaining + quantity, is_sold_out=False)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1
