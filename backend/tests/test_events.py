"""
Tests for event administration: creation, listing, cancellation policy.
"""

import pytest
from datetime import datetime, timezone, timedelta
from httpx import AsyncClient
from sqlalchemy import select

from ticketqueue.core.config import get_settings
from ticketqueue.core.errors import InvalidTicketTypeConfig, NotEventOrganizer
from ticketqueue.models.ticket import Ticket
from ticketqueue.models.waiting_list import WaitingListEntry
from ticketqueue.schemas.event import EventCreate, TicketTypeCreate
from ticketqueue.schemas.ticket import PaymentConfirmation
from ticketqueue.services.admission_service import join_waiting_list
from ticketqueue.services.event_service import cancel_event, create_event
from ticketqueue.services.purchase_service import purchase_ticket
from ticketqueue.services.waitlist_service import promote

ORGANIZER_ID = "organizer-1"


def _future() -> str:
    return (datetime.now(timezone.utc) + timedelta(days=30)).isoformat()


@pytest.mark.asyncio
async def test_create_event(client: AsyncClient, organizer_headers):
    """Authenticated user can create an event with ticket types."""
    response = await client.post(
        "/api/v1/events/",
        json={
            "title": "Python Conference 2026",
            "description": "Annual Python gathering",
            "date": _future(),
            "location": "Convention Center",
            "total_tickets": 500,
            "ticket_types": [
                {"id": "vip", "name": "VIP", "price": 300.0, "quantity": 50},
                {"id": "ga", "name": "General", "price": 80.0, "quantity": 450},
            ],
        },
        headers=organizer_headers,
    )
    assert response.status_code == 201
    data = response.json()
    assert data["title"] == "Python Conference 2026"
    assert data["organizer_id"] == ORGANIZER_ID
    assert data["total_tickets"] == 500
    assert [t["id"] for t in data["ticket_types"]] == ["vip", "ga"]
    assert all(t["remaining"] == t["quantity"] for t in data["ticket_types"])


@pytest.mark.asyncio
async def test_create_event_unauthenticated(client: AsyncClient):
    """Unauthenticated request returns 401."""
    response = await client.post("/api/v1/events/", json={
        "title": "Unauthorized Event",
        "date": _future(),
        "total_tickets": 100,
    })
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_create_event_past_date(client: AsyncClient, organizer_headers):
    """Event with past date returns 400."""
    past_date = (datetime.now(timezone.utc) - timedelta(days=1)).isoformat()
    response = await client.post(
        "/api/v1/events/",
        json={"title": "Past Event", "date": past_date, "total_tickets": 100},
        headers=organizer_headers,
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_create_event_invalid_total(client: AsyncClient, organizer_headers):
    """Zero total tickets returns 422."""
    response = await client.post(
        "/api/v1/events/",
        json={"title": "No Tickets", "date": _future(), "total_tickets": 0},
        headers=organizer_headers,
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_ticket_types_cannot_exceed_total(client: AsyncClient, organizer_headers):
    response = await client.post(
        "/api/v1/events/",
        json={
            "title": "Oversold",
            "date": _future(),
            "total_tickets": 10,
            "ticket_types": [{"id": "ga", "name": "General", "price": 10.0, "quantity": 11}],
        },
        headers=organizer_headers,
    )
    assert response.status_code == 400
    assert response.json()["code"] == "INVALID_TICKET_TYPE_CONFIG"


@pytest.mark.asyncio
async def test_duplicate_ticket_type_ids(db_session):
    event_data = EventCreate(
        title="Dupes",
        date=datetime.now(timezone.utc) + timedelta(days=1),
        total_tickets=10,
        ticket_types=[
            TicketTypeCreate(id="ga", name="A", price=1.0, quantity=1),
            TicketTypeCreate(id="ga", name="B", price=1.0, quantity=1),
        ],
    )
    with pytest.raises(InvalidTicketTypeConfig):
        await create_event(db_session, event_data, ORGANIZER_ID)


@pytest.mark.asyncio
async def test_list_events(client: AsyncClient, make_event):
    """List events returns paginated results."""
    await make_event(total_tickets=10)
    await make_event(total_tickets=20)

    response = await client.get("/api/v1/events/?page=1&page_size=1")
    assert response.status_code == 200
    data = response.json()
    assert data["total"] == 2
    assert len(data["events"]) == 1
    assert data["page_size"] == 1


@pytest.mark.asyncio
async def test_get_event_not_found(client: AsyncClient):
    response = await client.get("/api/v1/events/99999")
    assert response.status_code == 404
    assert response.json()["code"] == "EVENT_NOT_FOUND"


@pytest.mark.asyncio
async def test_cancel_cascades_tickets_and_leaves_waiting_dormant(db_session, limiter, scheduler, make_event):
    event = await make_event(total_tickets=1)
    offer = await join_waiting_list(db_session, limiter, scheduler, event.id, "user-a")
    await purchase_ticket(
        db_session, scheduler, event.id, "user-a", offer.waiting_list_id,
        PaymentConfirmation(reference="pi_1", amount=25.0, currency="usd"),
    )
    waiting = await join_waiting_list(db_session, limiter, scheduler, event.id, "user-b")

    result = await cancel_event(db_session, event.id, ORGANIZER_ID)

    assert result.tickets_cancelled == 1
    assert result.entries_expired == 0
    assert result.waitlist_policy == "dormant"
    tickets = (await db_session.execute(select(Ticket.status))).scalars().all()
    assert tickets == ["cancelled"]
    entry = await db_session.get(WaitingListEntry, waiting.waiting_list_id, populate_existing=True)
    assert entry.status == "waiting"
    # Dormant entries are never promoted
    assert await promote(db_session, scheduler, event.id) == []


@pytest.mark.asyncio
async def test_cancel_with_expire_policy(db_session, limiter, scheduler, make_event, monkeypatch):
    monkeypatch.setattr(get_settings(), "CANCELLED_EVENT_WAITLIST_POLICY", "expire")
    event = await make_event(total_tickets=1)
    offer = await join_waiting_list(db_session, limiter, scheduler, event.id, "user-a")
    waiting = await join_waiting_list(db_session, limiter, scheduler, event.id, "user-b")

    result = await cancel_event(db_session, event.id, ORGANIZER_ID)

    assert result.entries_expired == 2
    for entry_id in (offer.waiting_list_id, waiting.waiting_list_id):
        entry = await db_session.get(WaitingListEntry, entry_id, populate_existing=True)
        assert entry.status == "expired"


@pytest.mark.asyncio
async def test_cancel_requires_organizer(db_session, make_event):
    event = await make_event(total_tickets=1)

    with pytest.raises(NotEventOrganizer):
        await cancel_event(db_session, event.id, "someone-else")


@pytest.mark.asyncio
async def test_cancel_twice_is_noop(client: AsyncClient, organizer_headers, make_event):
    event = await make_event(total_tickets=1)

    first = await client.post(f"/api/v1/events/{event.id}/cancel", headers=organizer_headers)
    second = await client.post(f"/api/v1/events/{event.id}/cancel", headers=organizer_headers)

    assert first.status_code == 200
    assert second.status_code == 200
    assert second.json()["tickets_cancelled"] == 0
