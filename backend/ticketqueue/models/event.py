"""
Event and ticket type models: the inventory ledger.

Key design decisions:
- Each ticket type is its own row keyed by (event_id, id), so a purchase
  decrementing one type's `remaining` never rewrites its siblings
- `remaining` is `quantity - sold`; offers hold capacity by existing and are
  not subtracted here
- `version` on Event is the serialization point for every operation that
  creates a claim on the event's inventory (optimistic locking)
"""

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
)
from sqlalchemy.orm import relationship

from ticketqueue.db.base import Base, TimestampMixin


class Event(Base, TimestampMixin):
    __tablename__ = "events"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=False)
    description = Column(String(1000), nullable=True)
    date = Column(DateTime(timezone=True), nullable=False)
    location = Column(String(255), nullable=True)
    organizer_id = Column(String(255), nullable=False, index=True)
    total_tickets = Column(Integer, nullable=False)
    # Legacy single-price events have no ticket types
    price = Column(Float, nullable=False, default=0)
    is_cancelled = Column(Boolean, nullable=False, default=False)

    # Optimistic locking version counter
    version = Column(Integer, nullable=False, default=1)

    ticket_types = relationship(
        "TicketType",
        back_populates="event",
        lazy="selectin",
        order_by="TicketType.position",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        CheckConstraint("total_tickets > 0", name="check_total_tickets_positive"),
        Index("ix_events_date", "date"),
    )

    def __repr__(self) -> str:
        return f"<Event(id={self.id}, title={self.title}, total={self.total_tickets}, v={self.version})>"


class TicketType(Base, TimestampMixin):
    __tablename__ = "ticket_types"

    event_id = Column(Integer, ForeignKey("events.id"), primary_key=True)
    id = Column(String(64), primary_key=True)
    name = Column(String(255), nullable=False)
    price = Column(Float, nullable=False)
    quantity = Column(Integer, nullable=False)
    remaining = Column(Integer, nullable=False)
    is_sold_out = Column(Boolean, nullable=False, default=False)
    position = Column(Integer, nullable=False, default=0)

    event = relationship("Event", back_populates="ticket_types")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="check_ticket_type_quantity_positive"),
        CheckConstraint("remaining >= 0", name="check_ticket_type_remaining_non_negative"),
        CheckConstraint("remaining <= quantity", name="check_ticket_type_remaining_lte_quantity"),
    )

    def __repr__(self) -> str:
        return f"<TicketType(event={self.event_id}, id={self.id}, remaining={self.remaining}/{self.quantity})>"
