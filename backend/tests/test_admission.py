"""
Tests for joining the waiting list, including rate limiting and
concurrent joins for the last ticket.
"""

import pytest
from sqlalchemy import func, select

from ticketqueue.core.config import get_settings
from ticketqueue.core.errors import (
    AlreadyQueued,
    ConcurrencyConflict,
    EventCancelled,
    EventNotFound,
    RateLimitExceeded,
    TicketTypeNotFound,
)
from ticketqueue.models.waiting_list import WaitingListEntry
from ticketqueue.schemas.ticket import PaymentConfirmation
from ticketqueue.services import admission_service, availability_service, ledger_service
from ticketqueue.services.admission_service import join_waiting_list
from ticketqueue.services.purchase_service import purchase_ticket
from ticketqueue.services.rate_limit_service import DatabaseRateLimiter


@pytest.mark.asyncio
async def test_join_with_free_capacity_gets_offer(db_session, limiter, scheduler, make_event, frozen_clock):
    event = await make_event(total_tickets=1)

    result = await join_waiting_list(db_session, limiter, scheduler, event.id, "user-a")

    assert result.status == "offered"
    assert result.offer_expires_at == frozen_clock.now + 900_000
    assert "15 minutes" in result.message
    assert scheduler.calls == [(result.waiting_list_id, event.id, 900_000)]


@pytest.mark.asyncio
async def test_join_when_full_waits(db_session, limiter, scheduler, make_event):
    event = await make_event(total_tickets=1)
    await join_waiting_list(db_session, limiter, scheduler, event.id, "user-a")

    result = await join_waiting_list(db_session, limiter, scheduler, event.id, "user-b")

    assert result.status == "waiting"
    assert result.offer_expires_at is None
    assert len(scheduler.calls) == 1


@pytest.mark.asyncio
async def test_join_bumps_event_version(db_session, limiter, scheduler, make_event):
    event = await make_event(total_tickets=5)

    await join_waiting_list(db_session, limiter, scheduler, event.id, "user-a")

    refreshed = await ledger_service.load_event(db_session, event.id)
    assert refreshed.version == 2


@pytest.mark.asyncio
async def test_join_twice_is_rejected(db_session, limiter, scheduler, make_event):
    event = await make_event(total_tickets=1)
    await join_waiting_list(db_session, limiter, scheduler, event.id, "user-a")
    await join_waiting_list(db_session, limiter, scheduler, event.id, "user-b")

    with pytest.raises(AlreadyQueued):
        await join_waiting_list(db_session, limiter, scheduler, event.id, "user-a")
    with pytest.raises(AlreadyQueued):
        await join_waiting_list(db_session, limiter, scheduler, event.id, "user-b")


@pytest.mark.asyncio
async def test_lapsed_offer_does_not_block_rejoin(db_session, limiter, scheduler, make_event, frozen_clock):
    event = await make_event(total_tickets=1)
    await join_waiting_list(db_session, limiter, scheduler, event.id, "user-a")

    frozen_clock.advance(900_000)
    result = await join_waiting_list(db_session, limiter, scheduler, event.id, "user-a")

    assert result.status == "offered"


@pytest.mark.asyncio
async def test_expired_entry_does_not_block_rejoin(db_session, limiter, scheduler, make_event, make_entry):
    event = await make_event(total_tickets=1)
    await make_entry(event.id, "user-a", status="expired", offer_expires_at=0)

    result = await join_waiting_list(db_session, limiter, scheduler, event.id, "user-a")
    assert result.status == "offered"


@pytest.mark.asyncio
async def test_join_unknown_event(db_session, limiter, scheduler):
    with pytest.raises(EventNotFound):
        await join_waiting_list(db_session, limiter, scheduler, 9999, "user-a")


@pytest.mark.asyncio
async def test_join_cancelled_event(db_session, limiter, scheduler, make_event):
    event = await make_event(total_tickets=5, is_cancelled=True)

    with pytest.raises(EventCancelled):
        await join_waiting_list(db_session, limiter, scheduler, event.id, "user-a")


@pytest.mark.asyncio
async def test_join_unknown_ticket_type(db_session, limiter, scheduler, make_event):
    event = await make_event(total_tickets=5, ticket_types=[("ga", 20.0, 5)])

    with pytest.raises(TicketTypeNotFound):
        await join_waiting_list(db_session, limiter, scheduler, event.id, "user-a", ticket_type_id="vip")


@pytest.mark.asyncio
async def test_typed_join_must_fit_type_capacity(db_session, limiter, scheduler, make_event):
    event = await make_event(total_tickets=10, ticket_types=[("vip", 100.0, 2), ("ga", 20.0, 8)])

    too_many = await join_waiting_list(
        db_session, limiter, scheduler, event.id, "user-a", ticket_type_id="vip", quantity=3
    )
    fits = await join_waiting_list(
        db_session, limiter, scheduler, event.id, "user-b", ticket_type_id="ga", quantity=3
    )

    assert too_many.status == "waiting"
    assert fits.status == "offered"


@pytest.mark.asyncio
async def test_fourth_join_in_window_is_rate_limited(db_session, scheduler, make_event, frozen_clock):
    """Rejected joins still consume attempts; the fourth fails fast."""
    settings = get_settings()
    rate_limiter = DatabaseRateLimiter(
        db_session, settings.QUEUE_JOIN_RATE_LIMIT, settings.QUEUE_JOIN_RATE_WINDOW_MS
    )
    event = await make_event(total_tickets=5)

    await join_waiting_list(db_session, rate_limiter, scheduler, event.id, "user-a")
    for _ in range(2):
        with pytest.raises(AlreadyQueued):
            await join_waiting_list(db_session, rate_limiter, scheduler, event.id, "user-a")

    frozen_clock.advance(60_000)
    with pytest.raises(RateLimitExceeded) as exc_info:
        await join_waiting_list(db_session, rate_limiter, scheduler, event.id, "user-a")

    assert exc_info.value.retry_after_ms == 1_800_000 - 60_000
    count = await db_session.execute(select(func.count(WaitingListEntry.id)))
    assert count.scalar_one() == 1


@pytest.mark.asyncio
async def test_concurrent_joins_for_last_ticket_grant_one_offer(
    db_session, session_factory, limiter, scheduler, make_event, monkeypatch
):
    """
    A competitor commits an offer between our availability read and our
    write; our version check fails and the retry sees the event full.
    """
    event = await make_event(total_tickets=1)
    original_free_units_for = availability_service.free_units_for
    competitor_results = []
    interleaved = False

    async def free_units_with_competitor(db, event_obj, ticket_type, now_ms):
        nonlocal interleaved
        free = await original_free_units_for(db, event_obj, ticket_type, now_ms)
        if not interleaved:
            interleaved = True
            async with session_factory() as other_session:
                competitor_results.append(
                    await join_waiting_list(other_session, limiter, scheduler, event.id, "user-b")
                )
        return free

    monkeypatch.setattr(availability_service, "free_units_for", free_units_with_competitor)

    result = await join_waiting_list(db_session, limiter, scheduler, event.id, "user-a")

    assert competitor_results[0].status == "offered"
    assert result.status == "waiting"

    statuses = await db_session.execute(
        select(WaitingListEntry.user_id, WaitingListEntry.status).where(WaitingListEntry.event_id == event.id)
    )
    assert dict(statuses.all()) == {"user-a": "waiting", "user-b": "offered"}
    assert scheduler.entry_ids == [competitor_results[0].waiting_list_id]


@pytest.mark.asyncio
async def test_purchase_between_capacity_reads_does_not_oversell(
    db_session, session_factory, limiter, scheduler, make_event, monkeypatch
):
    """
    A holds the only ticket. B's join counts sold units, then A's purchase
    commits before B counts held offers, so B's reads see the unit in
    neither. The purchase bumps the event version, B's write is rejected,
    and the retry sees the ticket sold.
    """
    event = await make_event(total_tickets=1)
    event_id = event.id
    holder = await join_waiting_list(db_session, limiter, scheduler, event_id, "user-a")
    assert holder.status == "offered"

    original_count_held = availability_service.count_active_offer_units
    interleaved = False

    async def count_held_after_purchase(db, target_event_id, now_ms, ticket_type_id=None):
        nonlocal interleaved
        if not interleaved:
            interleaved = True
            async with session_factory() as other_session:
                await purchase_ticket(
                    other_session,
                    scheduler,
                    event_id,
                    "user-a",
                    holder.waiting_list_id,
                    PaymentConfirmation(reference="pi_a", amount=25.0, currency="usd"),
                )
        return await original_count_held(db, target_event_id, now_ms, ticket_type_id)

    monkeypatch.setattr(availability_service, "count_active_offer_units", count_held_after_purchase)

    result = await join_waiting_list(db_session, limiter, scheduler, event_id, "user-b")

    assert interleaved
    assert result.status == "waiting"
    availability = await availability_service.calculate_availability(db_session, event_id)
    assert availability.purchased_count == 1
    assert availability.active_offers == 0
    assert availability.purchased_count + availability.active_offers <= availability.total_tickets
    assert scheduler.entry_ids == [holder.waiting_list_id]


@pytest.mark.asyncio
async def test_join_gives_up_after_repeated_conflicts(db_session, limiter, scheduler, make_event, monkeypatch):
    event = await make_event(total_tickets=5)

    async def always_stale(db, event_id, expected_version):
        return False

    monkeypatch.setattr(admission_service.ledger_service, "claim_event_version", always_stale)

    with pytest.raises(ConcurrencyConflict):
        await join_waiting_list(db_session, limiter, scheduler, event.id, "user-a")

    count = await db_session.execute(select(func.count(WaitingListEntry.id)))
    assert count.scalar_one() == 0
    assert scheduler.calls == []
