"""
Pydantic schemas for the waiting list: joining, queue position, offers.
"""

from datetime import datetime
from typing import Literal, Optional
from pydantic import BaseModel, Field


class JoinQueueRequest(BaseModel):
    event_id: int
    ticket_type_id: Optional[str] = Field(None, max_length=64)
    quantity: int = Field(default=1, ge=1, le=10)


class JoinQueueResponse(BaseModel):
    waiting_list_id: int
    status: Literal["offered", "waiting"]
    offer_expires_at: Optional[int]
    message: str


class WaitingListEntryResponse(BaseModel):
    id: int
    event_id: int
    user_id: str
    status: str
    offer_expires_at: Optional[int]
    ticket_type_id: Optional[str]
    quantity: int
    created_at: datetime

    model_config = {"from_attributes": True}


class QueuePositionResponse(WaitingListEntryResponse):
    position: int


class ReleaseOfferResponse(BaseModel):
    waiting_list_id: int
    status: str
    message: str
