"""
Ticket model: one row per purchased unit.

Tickets are never deleted; status models check-in (used), refund, and
cascading cancellation when the parent event is cancelled.
"""

from sqlalchemy import BigInteger, CheckConstraint, Column, Float, ForeignKey, Index, Integer, String

from ticketqueue.db.base import Base, TimestampMixin


class TicketStatus:
    VALID = "valid"
    USED = "used"
    REFUNDED = "refunded"
    CANCELLED = "cancelled"

    # Statuses that consume inventory
    HOLDING = (VALID, USED)


class Ticket(Base, TimestampMixin):
    __tablename__ = "tickets"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False, index=True)
    user_id = Column(String(255), nullable=False, index=True)
    waiting_list_id = Column(Integer, ForeignKey("waiting_list.id"), nullable=True)
    status = Column(String(20), nullable=False, default=TicketStatus.VALID)
    ticket_type_id = Column(String(64), nullable=True)
    amount = Column(Float, nullable=False)
    currency = Column(String(8), nullable=False)
    payment_reference = Column(String(255), nullable=False, index=True)
    purchased_at = Column(BigInteger, nullable=False)

    __table_args__ = (
        CheckConstraint(
            "status IN ('valid', 'used', 'refunded', 'cancelled')",
            name="check_ticket_status",
        ),
        Index("ix_tickets_event_status", "event_id", "status"),
    )

    def __repr__(self) -> str:
        return f"<Ticket(id={self.id}, event={self.event_id}, user={self.user_id}, status={self.status})>"
