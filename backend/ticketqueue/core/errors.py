"""
Domain errors for the ticket queue.

Every error carries a stable ``ErrorCode`` and the HTTP status the API
layer renders it with. None of these are retried by the system; the
caller re-attempts the operation (e.g. rejoins the queue).
"""

from enum import Enum
from typing import Optional


class ErrorCode(Enum):
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    ALREADY_QUEUED = "ALREADY_QUEUED"
    EVENT_NOT_FOUND = "EVENT_NOT_FOUND"
    EVENT_CANCELLED = "EVENT_CANCELLED"
    NOT_EVENT_ORGANIZER = "NOT_EVENT_ORGANIZER"
    OFFER_NOT_FOUND = "OFFER_NOT_FOUND"
    OFFER_INVALID_STATE = "OFFER_INVALID_STATE"
    OFFER_EXPIRED = "OFFER_EXPIRED"
    OFFER_OWNERSHIP_MISMATCH = "OFFER_OWNERSHIP_MISMATCH"
    INSUFFICIENT_INVENTORY = "INSUFFICIENT_INVENTORY"
    TICKET_TYPE_NOT_FOUND = "TICKET_TYPE_NOT_FOUND"
    INVALID_TICKET_TYPE_CONFIG = "INVALID_TICKET_TYPE_CONFIG"
    TICKET_NOT_FOUND = "TICKET_NOT_FOUND"
    TICKET_INVALID_STATE = "TICKET_INVALID_STATE"
    CONCURRENCY_CONFLICT = "CONCURRENCY_CONFLICT"


class DomainError(Exception):
    """Base domain error with code, user-safe message and HTTP status."""

    code: ErrorCode
    status_code: int = 400

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"


class RateLimitExceeded(DomainError):
    code = ErrorCode.RATE_LIMIT_EXCEEDED
    status_code = 429

    def __init__(self, retry_after_ms: int):
        self.retry_after_ms = retry_after_ms
        minutes = max(1, -(-retry_after_ms // 60000))
        super().__init__(
            f"You've joined the waiting list too many times. "
            f"Please wait {minutes} minutes before trying again."
        )

    @property
    def retry_after_seconds(self) -> int:
        return max(1, -(-self.retry_after_ms // 1000))


class AlreadyQueued(DomainError):
    code = ErrorCode.ALREADY_QUEUED
    status_code = 409

    def __init__(self, event_id: int):
        self.event_id = event_id
        super().__init__("Already in waiting list for this event")


class EventNotFound(DomainError):
    code = ErrorCode.EVENT_NOT_FOUND
    status_code = 404

    def __init__(self, event_id: int):
        self.event_id = event_id
        super().__init__(f"Event {event_id} not found")


class EventCancelled(DomainError):
    code = ErrorCode.EVENT_CANCELLED
    status_code = 409

    def __init__(self, event_id: int):
        self.event_id = event_id
        super().__init__("Event is no longer active")


class NotEventOrganizer(DomainError):
    code = ErrorCode.NOT_EVENT_ORGANIZER
    status_code = 403

    def __init__(self, event_id: int):
        self.event_id = event_id
        super().__init__("Only the event organizer can perform this action")


class OfferNotFound(DomainError):
    code = ErrorCode.OFFER_NOT_FOUND
    status_code = 404

    def __init__(self, waiting_list_id: Optional[int] = None, message: str = "Waiting list entry not found"):
        self.waiting_list_id = waiting_list_id
        super().__init__(message)


class OfferInvalidState(DomainError):
    code = ErrorCode.OFFER_INVALID_STATE
    status_code = 409

    def __init__(self, waiting_list_id: int, status: str):
        self.waiting_list_id = waiting_list_id
        self.status = status
        super().__init__(f"Invalid waiting list status '{status}' - ticket offer may have expired")


class OfferExpired(DomainError):
    code = ErrorCode.OFFER_EXPIRED
    status_code = 409

    def __init__(self, waiting_list_id: int):
        self.waiting_list_id = waiting_list_id
        super().__init__("Ticket offer has expired")


class OfferOwnershipMismatch(DomainError):
    code = ErrorCode.OFFER_OWNERSHIP_MISMATCH
    status_code = 403

    def __init__(self, waiting_list_id: int):
        self.waiting_list_id = waiting_list_id
        super().__init__("Waiting list entry does not belong to this user")


class InsufficientInventory(DomainError):
    code = ErrorCode.INSUFFICIENT_INVENTORY
    status_code = 409

    def __init__(self, ticket_type_id: str, requested: int, remaining: int):
        self.ticket_type_id = ticket_type_id
        self.requested = requested
        self.remaining = remaining
        super().__init__(
            f"Not enough tickets available. Requested: {requested}, Remaining: {remaining}"
        )


class TicketTypeNotFound(DomainError):
    code = ErrorCode.TICKET_TYPE_NOT_FOUND
    status_code = 404

    def __init__(self, ticket_type_id: str):
        self.ticket_type_id = ticket_type_id
        super().__init__(f"Ticket type '{ticket_type_id}' not found")


class InvalidTicketTypeConfig(DomainError):
    code = ErrorCode.INVALID_TICKET_TYPE_CONFIG
    status_code = 400


class TicketNotFound(DomainError):
    code = ErrorCode.TICKET_NOT_FOUND
    status_code = 404

    def __init__(self, ticket_id: int):
        self.ticket_id = ticket_id
        super().__init__(f"Ticket {ticket_id} not found")


class TicketInvalidState(DomainError):
    code = ErrorCode.TICKET_INVALID_STATE
    status_code = 409

    def __init__(self, ticket_id: int, current: str, requested: str):
        self.ticket_id = ticket_id
        super().__init__(f"Cannot move ticket from '{current}' to '{requested}'")


class ConcurrencyConflict(DomainError):
    code = ErrorCode.CONCURRENCY_CONFLICT
    status_code = 409

    def __init__(self, event_id: int):
        self.event_id = event_id
        super().__init__("Request failed due to high demand. Please try again.")
