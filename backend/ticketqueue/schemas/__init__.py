from ticketqueue.schemas.event import (
    TicketTypeCreate, TicketTypeResponse,
    EventCreate, EventResponse, EventListResponse, EventCancelResponse,
    AvailabilityResponse,
)
from ticketqueue.schemas.queue import (
    JoinQueueRequest, JoinQueueResponse,
    WaitingListEntryResponse, QueuePositionResponse, ReleaseOfferResponse,
)
from ticketqueue.schemas.ticket import (
    PaymentConfirmation, PurchaseRequest, PurchaseResponse,
    TicketResponse, TicketStatusUpdate,
)
from ticketqueue.schemas.admin import CleanupResult, ProcessWaitlistResult

__all__ = [
    "TicketTypeCreate", "TicketTypeResponse",
    "EventCreate", "EventResponse", "EventListResponse", "EventCancelResponse",
    "AvailabilityResponse",
    "JoinQueueRequest", "JoinQueueResponse",
    "WaitingListEntryResponse", "QueuePositionResponse", "ReleaseOfferResponse",
    "PaymentConfirmation", "PurchaseRequest", "PurchaseResponse",
    "TicketResponse", "TicketStatusUpdate",
    "CleanupResult", "ProcessWaitlistResult",
]
