"""
Event endpoints: organizer administration and live availability.
"""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from ticketqueue.db.session import get_db
from ticketqueue.schemas.event import (
    AvailabilityResponse,
    EventCancelResponse,
    EventCreate,
    EventListResponse,
    EventResponse,
)
from ticketqueue.services.availability_service import calculate_availability
from ticketqueue.services.event_service import cancel_event, create_event, get_event, list_events
from ticketqueue.core.security import get_current_user_id
from ticketqueue.core.logging import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/events", tags=["Events"])


@router.post("/", response_model=EventResponse, status_code=status.HTTP_201_CREATED)
async def create_event_endpoint(
    event_data: EventCreate,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Create a new event. The caller becomes its organizer."""
    event = await create_event(db, event_data, user_id)
    return event


@router.get("/", response_model=EventListResponse)
async def list_events_endpoint(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    upcoming_only: bool = Query(True),
    db: AsyncSession = Depends(get_db),
):
    """List events with pagination."""
    events, total = await list_events(db, page, page_size, upcoming_only)
    return EventListResponse(
        events=[EventResponse.model_validate(e) for e in events],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("/{event_id}", response_model=EventResponse)
async def get_event_endpoint(
    event_id: int,
    db: AsyncSession = Depends(get_db),
):
    """Get a single event by ID, with per-type remaining counts."""
    event = await get_event(db, event_id)
    return event


@router.get("/{event_id}/availability", response_model=AvailabilityResponse)
async def get_availability_endpoint(
    event_id: int,
    db: AsyncSession = Depends(get_db),
):
    """
    Live availability. Never cached: active offers lapse by wall-clock time,
    so the figures change without any write.
    """
    availability = await calculate_availability(db, event_id)
    return AvailabilityResponse(**availability.__dict__)


@router.post("/{event_id}/cancel", response_model=EventCancelResponse)
async def cancel_event_endpoint(
    event_id: int,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Cancel an event. Organizer only."""
    result = await cancel_event(db, event_id, user_id)
    return EventCancelResponse(
        event_id=result.event_id,
        tickets_cancelled=result.tickets_cancelled,
        entries_expired=result.entries_expired,
        waitlist_policy=result.waitlist_policy,
    )
