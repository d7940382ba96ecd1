"""
Pydantic schemas for maintenance endpoints.
"""

from pydantic import BaseModel


class CleanupResult(BaseModel):
    processed: int
    errors: int
    events: list[int]


class ProcessWaitlistResult(BaseModel):
    processed: int
    promoted: int
    errors: int
    event_ids: list[int]
