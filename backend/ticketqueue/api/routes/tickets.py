"""
Ticket endpoints: the caller's tickets and organizer status changes.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ticketqueue.db.session import get_db
from ticketqueue.schemas.ticket import TicketResponse, TicketStatusUpdate
from ticketqueue.services.ticket_service import get_user_tickets, update_ticket_status
from ticketqueue.services.interfaces.expiry_scheduler import ExpiryScheduler
from ticketqueue.services.strategy_factory import get_expiry_scheduler
from ticketqueue.core.security import get_current_user_id

router = APIRouter(prefix="/tickets", tags=["Tickets"])


@router.get("/", response_model=list[TicketResponse])
async def list_user_tickets(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Get all tickets for the authenticated user."""
    return await get_user_tickets(db, user_id)


@router.patch("/{ticket_id}/status", response_model=TicketResponse)
async def update_ticket_status_endpoint(
    ticket_id: int,
    update: TicketStatusUpdate,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    scheduler: ExpiryScheduler = Depends(get_expiry_scheduler),
):
    """Check in, refund, or cancel a ticket. Organizer only."""
    return await update_ticket_status(db, scheduler, ticket_id, update.status, user_id)
