"""
Tests for the cleanup sweep and the maintenance worker.
"""

import pytest
from sqlalchemy import select

from ticketqueue.models.waiting_list import WaitingListEntry
from ticketqueue.services.maintenance_service import MaintenanceWorker, cleanup_expired_reservations


async def _statuses(db_session, event_id: int) -> dict[str, str]:
    result = await db_session.execute(
        select(WaitingListEntry.user_id, WaitingListEntry.status)
        .where(WaitingListEntry.event_id == event_id)
        .execution_options(populate_existing=True)
    )
    return dict(result.all())


@pytest.mark.asyncio
async def test_cleanup_expires_lapsed_offers_and_promotes(
    db_session, scheduler, make_event, make_entry, frozen_clock
):
    event = await make_event(total_tickets=1)
    await make_entry(event.id, "lapsed", status="offered", offer_expires_at=frozen_clock.now - 1)
    await make_entry(event.id, "next", status="waiting")

    summary = await cleanup_expired_reservations(db_session, scheduler)

    assert summary.processed == 1
    assert summary.errors == 0
    assert summary.events == [event.id]
    assert await _statuses(db_session, event.id) == {"lapsed": "expired", "next": "offered"}


@pytest.mark.asyncio
async def test_cleanup_leaves_live_and_purchased_entries(
    db_session, scheduler, make_event, make_entry, frozen_clock
):
    event = await make_event(total_tickets=3)
    await make_entry(event.id, "live", status="offered", offer_expires_at=frozen_clock.now + 1)
    await make_entry(event.id, "bought", status="purchased", offer_expires_at=frozen_clock.now - 1)

    summary = await cleanup_expired_reservations(db_session, scheduler)

    assert summary.processed == 0
    assert await _statuses(db_session, event.id) == {"live": "offered", "bought": "purchased"}


@pytest.mark.asyncio
async def test_cleanup_is_idempotent(db_session, scheduler, make_event, make_entry, frozen_clock):
    event = await make_event(total_tickets=2)
    await make_entry(event.id, "a", status="offered", offer_expires_at=frozen_clock.now - 1)
    await make_entry(event.id, "b", status="offered", offer_expires_at=frozen_clock.now - 1)

    first = await cleanup_expired_reservations(db_session, scheduler)
    second = await cleanup_expired_reservations(db_session, scheduler)

    assert first.processed == 2
    assert second.processed == 0
    assert second.events == []


@pytest.mark.asyncio
async def test_worker_cycle_runs_cleanup_then_promotion(
    session_factory, db_session, scheduler, make_event, make_entry, frozen_clock
):
    lapsed_event = await make_event(total_tickets=1)
    open_event = await make_event(total_tickets=1)
    await make_entry(lapsed_event.id, "lapsed", status="offered", offer_expires_at=frozen_clock.now - 1)
    await make_entry(open_event.id, "orphan", status="waiting")

    worker = MaintenanceWorker(session_factory, scheduler, interval=0.01)
    cleanup, promoted = await worker.process_once()

    assert cleanup.processed == 1
    assert promoted.promoted == 1
    assert promoted.event_ids == [open_event.id]
    assert await _statuses(db_session, open_event.id) == {"orphan": "offered"}
