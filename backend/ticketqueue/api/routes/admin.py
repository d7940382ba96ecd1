"""
Maintenance endpoints, guarded by X-Admin-Key.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ticketqueue.api.deps import require_admin_key
from ticketqueue.db.session import get_db
from ticketqueue.schemas.admin import CleanupResult, ProcessWaitlistResult
from ticketqueue.services.maintenance_service import cleanup_expired_reservations
from ticketqueue.services.waitlist_service import process_waitlist
from ticketqueue.services.interfaces.expiry_scheduler import ExpiryScheduler
from ticketqueue.services.strategy_factory import get_expiry_scheduler

router = APIRouter(
    prefix="/admin",
    tags=["Admin"],
    dependencies=[Depends(require_admin_key)],
)


@router.post("/cleanup-expired", response_model=CleanupResult)
async def cleanup_expired_endpoint(
    db: AsyncSession = Depends(get_db),
    scheduler: ExpiryScheduler = Depends(get_expiry_scheduler),
):
    """Expire every lapsed offer and promote the next in line."""
    summary = await cleanup_expired_reservations(db, scheduler)
    return CleanupResult(processed=summary.processed, errors=summary.errors, events=summary.events)


@router.post("/process-waitlist", response_model=ProcessWaitlistResult)
async def process_waitlist_endpoint(
    max_entries: Optional[int] = Query(None, ge=1, le=1000),
    db: AsyncSession = Depends(get_db),
    scheduler: ExpiryScheduler = Depends(get_expiry_scheduler),
):
    """Promote waiting entries across all events, bounded by max_entries."""
    result = await process_waitlist(db, scheduler, max_entries)
    return ProcessWaitlistResult(
        processed=result.processed,
        promoted=result.promoted,
        errors=result.errors,
        event_ids=result.event_ids,
    )
