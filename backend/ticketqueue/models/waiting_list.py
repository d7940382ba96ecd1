"""
Waiting list entry: one user's claim (or pending claim) on an event.

State machine:
    waiting --(promote)--> offered --(purchase)--> purchased
    offered --(expiry / release)--> expired
    waiting --(leave queue / cancelled-event policy)--> expired

Status changes are compare-and-swap updates on `status`, so concurrent
purchase/expiry of the same offer resolve to exactly one winner.
"""

from sqlalchemy import BigInteger, CheckConstraint, Column, ForeignKey, Index, Integer, String

from ticketqueue.db.base import Base, TimestampMixin


class WaitingListStatus:
    WAITING = "waiting"
    OFFERED = "offered"
    PURCHASED = "purchased"
    EXPIRED = "expired"

    ALL = (WAITING, OFFERED, PURCHASED, EXPIRED)


class WaitingListEntry(Base, TimestampMixin):
    __tablename__ = "waiting_list"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False)
    user_id = Column(String(255), nullable=False)
    status = Column(String(20), nullable=False, default=WaitingListStatus.WAITING)
    # Epoch milliseconds; set iff status is offered (kept for history once expired/purchased)
    offer_expires_at = Column(BigInteger, nullable=True)
    ticket_type_id = Column(String(64), nullable=True)
    quantity = Column(Integer, nullable=False, default=1)

    __table_args__ = (
        CheckConstraint("quantity >= 1", name="check_waiting_list_quantity_positive"),
        CheckConstraint(
            "status IN ('waiting', 'offered', 'purchased', 'expired')",
            name="check_waiting_list_status",
        ),
        Index("ix_waiting_list_event_status", "event_id", "status"),
        Index("ix_waiting_list_user_event", "user_id", "event_id"),
        Index("ix_waiting_list_status_expires", "status", "offer_expires_at"),
    )

    def __repr__(self) -> str:
        return f"<WaitingListEntry(id={self.id}, event={self.event_id}, user={self.user_id}, status={self.status})>"
