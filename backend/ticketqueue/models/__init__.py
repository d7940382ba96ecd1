from ticketqueue.models.event import Event, TicketType
from ticketqueue.models.rate_limit import RateLimitWindow
from ticketqueue.models.ticket import Ticket, TicketStatus
from ticketqueue.models.waiting_list import WaitingListEntry, WaitingListStatus

__all__ = [
    "Event", "TicketType",
    "RateLimitWindow",
    "Ticket", "TicketStatus",
    "WaitingListEntry", "WaitingListStatus",
]
