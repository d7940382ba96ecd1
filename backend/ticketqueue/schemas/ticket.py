"""
Pydantic schemas for purchases and tickets.
"""

from typing import Literal, Optional
from pydantic import BaseModel, Field


class PaymentConfirmation(BaseModel):
    """Payment already verified by the external gateway."""

    reference: str = Field(..., min_length=1, max_length=255)
    amount: float = Field(..., ge=0)
    currency: str = Field(..., min_length=3, max_length=8)


class PurchaseRequest(BaseModel):
    event_id: int
    waiting_list_id: int
    payment: PaymentConfirmation


class TicketResponse(BaseModel):
    id: int
    event_id: int
    user_id: str
    status: str
    ticket_type_id: Optional[str]
    amount: float
    currency: str
    payment_reference: str
    purchased_at: int

    model_config = {"from_attributes": True}


class PurchaseResponse(BaseModel):
    waiting_list_id: int
    tickets: list[TicketResponse]


class TicketStatusUpdate(BaseModel):
    status: Literal["used", "refunded", "cancelled"]
