"""
Tests for the availability calculator.
"""

import pytest

from ticketqueue.core.errors import EventNotFound
from ticketqueue.models.ticket import Ticket, TicketStatus
from ticketqueue.services.availability_service import calculate_availability, free_units_for
from ticketqueue.services import ledger_service


def _ticket(event_id: int, status: str, ticket_type_id=None) -> Ticket:
    return Ticket(
        event_id=event_id,
        user_id="buyer",
        status=status,
        ticket_type_id=ticket_type_id,
        amount=25.0,
        currency="usd",
        payment_reference="pi_test",
        purchased_at=0,
    )


@pytest.mark.asyncio
async def test_fresh_event_is_fully_available(db_session, make_event):
    event = await make_event(total_tickets=5)

    availability = await calculate_availability(db_session, event.id)

    assert availability.available is True
    assert availability.available_spots == 5
    assert availability.total_tickets == 5
    assert availability.purchased_count == 0
    assert availability.active_offers == 0


@pytest.mark.asyncio
async def test_active_offers_hold_capacity(db_session, make_event, make_entry, frozen_clock):
    event = await make_event(total_tickets=3)
    await make_entry(event.id, "a", status="offered", offer_expires_at=frozen_clock.now + 60_000)
    await make_entry(event.id, "b", status="offered", offer_expires_at=frozen_clock.now + 60_000, quantity=2)

    availability = await calculate_availability(db_session, event.id)

    assert availability.active_offers == 3
    assert availability.available_spots == 0
    assert availability.available is False


@pytest.mark.asyncio
async def test_lapsed_offer_no_longer_counts(db_session, make_event, make_entry, frozen_clock):
    """An offer past its deadline frees capacity even before its timer fires."""
    event = await make_event(total_tickets=1)
    await make_entry(event.id, "a", status="offered", offer_expires_at=frozen_clock.now + 1000)

    assert (await calculate_availability(db_session, event.id)).available is False

    frozen_clock.advance(1000)
    availability = await calculate_availability(db_session, event.id)
    assert availability.active_offers == 0
    assert availability.available_spots == 1


@pytest.mark.asyncio
async def test_waiting_and_expired_entries_hold_nothing(db_session, make_event, make_entry, frozen_clock):
    event = await make_event(total_tickets=2)
    await make_entry(event.id, "a", status="waiting")
    await make_entry(event.id, "b", status="expired", offer_expires_at=frozen_clock.now - 1)

    availability = await calculate_availability(db_session, event.id)
    assert availability.available_spots == 2


@pytest.mark.asyncio
async def test_only_valid_and_used_tickets_are_sold(db_session, make_event):
    event = await make_event(total_tickets=10)
    db_session.add_all([
        _ticket(event.id, TicketStatus.VALID),
        _ticket(event.id, TicketStatus.USED),
        _ticket(event.id, TicketStatus.REFUNDED),
        _ticket(event.id, TicketStatus.CANCELLED),
    ])
    await db_session.commit()

    availability = await calculate_availability(db_session, event.id)
    assert availability.purchased_count == 2
    assert availability.available_spots == 8


@pytest.mark.asyncio
async def test_unknown_event(db_session):
    with pytest.raises(EventNotFound):
        await calculate_availability(db_session, 9999)


@pytest.mark.asyncio
async def test_free_units_is_tighter_of_event_and_type(db_session, make_event, make_entry, frozen_clock):
    event = await make_event(total_tickets=10, ticket_types=[("vip", 100.0, 2), ("ga", 20.0, 8)])
    await make_entry(
        event.id, "a", status="offered", offer_expires_at=frozen_clock.now + 60_000,
        ticket_type_id="vip", quantity=1,
    )

    vip = await ledger_service.get_ticket_type(db_session, event.id, "vip")
    ga = await ledger_service.get_ticket_type(db_session, event.id, "ga")
    event = await ledger_service.load_event(db_session, event.id)

    assert await free_units_for(db_session, event, vip, frozen_clock.now) == 1
    assert await free_units_for(db_session, event, ga, frozen_clock.now) == 8
    assert await free_units_for(db_session, event, None, frozen_clock.now) == 9
