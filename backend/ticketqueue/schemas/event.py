"""
Pydantic schemas for event and availability request/response validation.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field


class TicketTypeCreate(BaseModel):
    id: str = Field(..., min_length=1, max_length=64, pattern=r"^[a-zA-Z0-9_-]+$")
    name: str = Field(..., min_length=1, max_length=255)
    price: float = Field(..., ge=0)
    quantity: int = Field(..., gt=0, le=100000)


class TicketTypeResponse(BaseModel):
    id: str
    name: str
    price: float
    quantity: int
    remaining: int
    is_sold_out: bool

    model_config = {"from_attributes": True}


class EventCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=1000)
    date: datetime
    location: Optional[str] = Field(None, max_length=255)
    total_tickets: int = Field(..., gt=0, le=100000)
    price: float = Field(default=0, ge=0)
    ticket_types: list[TicketTypeCreate] = Field(default_factory=list)


class EventResponse(BaseModel):
    id: int
    title: str
    description: Optional[str]
    date: datetime
    location: Optional[str]
    organizer_id: str
    total_tickets: int
    price: float
    is_cancelled: bool
    ticket_types: list[TicketTypeResponse]
    created_at: datetime

    model_config = {"from_attributes": True}


class EventListResponse(BaseModel):
    events: list[EventResponse]
    total: int
    page: int
    page_size: int


class EventCancelResponse(BaseModel):
    event_id: int
    tickets_cancelled: int
    entries_expired: int
    waitlist_policy: str


class AvailabilityResponse(BaseModel):
    event_id: int
    available: bool
    available_spots: int
    total_tickets: int
    purchased_count: int
    active_offers: int
