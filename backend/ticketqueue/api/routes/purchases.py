"""
Purchase endpoint: converts a live offer into tickets.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from ticketqueue.db.session import get_db
from ticketqueue.schemas.ticket import PurchaseRequest, PurchaseResponse, TicketResponse
from ticketqueue.services.purchase_service import purchase_ticket
from ticketqueue.services.interfaces.expiry_scheduler import ExpiryScheduler
from ticketqueue.services.strategy_factory import get_expiry_scheduler
from ticketqueue.core.security import get_current_user_id

router = APIRouter(prefix="/purchases", tags=["Purchases"])


@router.post("/", response_model=PurchaseResponse, status_code=status.HTTP_201_CREATED)
async def create_purchase(
    purchase_data: PurchaseRequest,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    scheduler: ExpiryScheduler = Depends(get_expiry_scheduler),
):
    """
    Finalize a purchase for an offered entry.

    The payment has already been confirmed by the gateway; this records it.
    Fails with 409 if the offer lapsed or was already used.
    """
    result = await purchase_ticket(
        db,
        scheduler,
        event_id=purchase_data.event_id,
        user_id=user_id,
        waiting_list_id=purchase_data.waiting_list_id,
        payment=purchase_data.payment,
    )
    return PurchaseResponse(
        waiting_list_id=result.waiting_list_id,
        tickets=[TicketResponse.model_validate(t) for t in result.tickets],
    )
