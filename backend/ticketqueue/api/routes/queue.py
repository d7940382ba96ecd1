"""
Waiting list endpoints: join, inspect, leave, and release offers.
"""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from ticketqueue.db.session import get_db
from ticketqueue.schemas.queue import (
    JoinQueueRequest,
    JoinQueueResponse,
    QueuePositionResponse,
    ReleaseOfferResponse,
    WaitingListEntryResponse,
)
from ticketqueue.services.admission_service import join_waiting_list
from ticketqueue.services.queue_service import (
    get_queue_position,
    get_user_waiting_list,
    leave_queue,
    release_offer,
)
from ticketqueue.services.interfaces.expiry_scheduler import ExpiryScheduler
from ticketqueue.services.interfaces.rate_limiter import RateLimiter
from ticketqueue.services.strategy_factory import get_expiry_scheduler, get_rate_limiter
from ticketqueue.core.security import get_current_user_id
from ticketqueue.core.logging import get_logger
from ticketqueue.core.metrics import queue_join_latency

logger = get_logger(__name__)
router = APIRouter(prefix="/queue", tags=["Queue"])


@router.post("/join", response_model=JoinQueueResponse, status_code=status.HTTP_201_CREATED)
async def join_queue(
    join_data: JoinQueueRequest,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    rate_limiter: RateLimiter = Depends(get_rate_limiter),
    scheduler: ExpiryScheduler = Depends(get_expiry_scheduler),
):
    """
    Join an event's waiting list.

    Returns an offer immediately when capacity is free, otherwise a FIFO
    waiting position. Limited to QUEUE_JOIN_RATE_LIMIT attempts per window.
    """
    with queue_join_latency.time():
        result = await join_waiting_list(
            db,
            rate_limiter,
            scheduler,
            event_id=join_data.event_id,
            user_id=user_id,
            ticket_type_id=join_data.ticket_type_id,
            quantity=join_data.quantity,
        )
    return JoinQueueResponse(
        waiting_list_id=result.waiting_list_id,
        status=result.status,
        offer_expires_at=result.offer_expires_at,
        message=result.message,
    )


@router.get("/", response_model=list[WaitingListEntryResponse])
async def list_my_entries(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """All of the caller's waiting list entries, newest first."""
    return await get_user_waiting_list(db, user_id)


@router.get("/position/{event_id}", response_model=QueuePositionResponse)
async def queue_position(
    event_id: int,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """The caller's current entry for an event and its place in line."""
    position = await get_queue_position(db, event_id, user_id)
    if position is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Not in the waiting list for this event",
        )
    return QueuePositionResponse(
        **WaitingListEntryResponse.model_validate(position.entry).model_dump(),
        position=position.position,
    )


@router.delete("/{event_id}", response_model=WaitingListEntryResponse)
async def leave_queue_endpoint(
    event_id: int,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Leave an event's waiting list. Only waiting entries can leave."""
    return await leave_queue(db, event_id, user_id)


@router.post("/offers/{waiting_list_id}/release", response_model=ReleaseOfferResponse)
async def release_offer_endpoint(
    waiting_list_id: int,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    scheduler: ExpiryScheduler = Depends(get_expiry_scheduler),
):
    """Give back an offer before it expires; the next in line is promoted."""
    entry = await release_offer(db, scheduler, waiting_list_id, user_id)
    return ReleaseOfferResponse(
        waiting_list_id=entry.id,
        status=entry.status,
        message="Offer released",
    )
