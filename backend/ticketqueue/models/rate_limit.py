"""
Fixed-window rate limiter state, one row per (key, action).
"""

from sqlalchemy import BigInteger, Column, Integer, String

from ticketqueue.db.base import Base


class RateLimitWindow(Base):
    __tablename__ = "rate_limit_windows"

    key = Column(String(255), primary_key=True)
    action = Column(String(64), primary_key=True)
    window_start = Column(BigInteger, nullable=False)
    count = Column(Integer, nullable=False, default=0)

    def __repr__(self) -> str:
        return f"<RateLimitWindow(key={self.key}, action={self.action}, count={self.count})>"
