"""
Queue affordances around the core engine: position lookup, leaving the
queue, voluntarily releasing an offer, and listing a user's entries.
"""

from dataclasses import dataclass
from typing import Optional

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from ticketqueue.core import clock
from ticketqueue.core.errors import OfferInvalidState, OfferNotFound, OfferOwnershipMismatch
from ticketqueue.core.logging import get_logger
from ticketqueue.core.metrics import record_expiry
from ticketqueue.models.waiting_list import WaitingListEntry, WaitingListStatus
from ticketqueue.services import waitlist_service
from ticketqueue.services.interfaces.expiry_scheduler import ExpiryScheduler

logger = get_logger(__name__)


@dataclass
class QueuePosition:
    entry: WaitingListEntry
    position: int


async def get_queue_position(db: AsyncSession, event_id: int, user_id: str) -> Optional[QueuePosition]:
    """
    The user's current (non-expired) entry and its 1-based place in line.
    Returns None if the user is not queued for the event.
    """
    result = await db.execute(
        select(WaitingListEntry)
        .where(
            WaitingListEntry.event_id == event_id,
            WaitingListEntry.user_id == user_id,
            WaitingListEntry.status != WaitingListStatus.EXPIRED,
        )
        .order_by(WaitingListEntry.id.desc())
        .limit(1)
        .execution_options(populate_existing=True)
    )
    entry = result.scalar_one_or_none()
    if not entry:
        return None

    ahead = aliased(WaitingListEntry)
    ref = aliased(WaitingListEntry)
    count_result = await db.execute(
        select(func.count(ahead.id))
        .select_from(ahead)
        .join(ref, ref.id == entry.id)
        .where(
            ahead.event_id == event_id,
            ahead.status.in_((WaitingListStatus.WAITING, WaitingListStatus.OFFERED)),
            or_(
                ahead.created_at < ref.created_at,
                and_(ahead.created_at == ref.created_at, ahead.id < ref.id),
            ),
        )
    )
    people_ahead = count_result.scalar_one()
    return QueuePosition(entry=entry, position=people_ahead + 1)


async def get_user_waiting_list(db: AsyncSession, user_id: str) -> list[WaitingListEntry]:
    result = await db.execute(
        select(WaitingListEntry)
        .where(WaitingListEntry.user_id == user_id)
        .order_by(WaitingListEntry.id.desc())
    )
    return list(result.scalars().all())


async def leave_queue(db: AsyncSession, event_id: int, user_id: str) -> WaitingListEntry:
    """
    Withdraw a waiting entry. Waiting entries hold no capacity, so there is
    no inventory effect and nobody is promoted.
    """
    result = await db.execute(
        select(WaitingListEntry)
        .where(
            WaitingListEntry.event_id == event_id,
            WaitingListEntry.user_id == user_id,
            WaitingListEntry.status == WaitingListStatus.WAITING,
        )
        .order_by(WaitingListEntry.id.desc())
        .limit(1)
    )
    entry = result.scalar_one_or_none()
    if not entry:
        raise OfferNotFound(message="Not in the waiting list for this event")

    withdrawn = await db.execute(
        update(WaitingListEntry)
        .where(
            WaitingListEntry.id == entry.id,
            WaitingListEntry.status == WaitingListStatus.WAITING,
        )
        .values(status=WaitingListStatus.EXPIRED)
        .execution_options(synchronize_session=False)
    )
    if withdrawn.rowcount == 0:
        # Promoted between our read and write
        await db.rollback()
        await db.refresh(entry)
        raise OfferInvalidState(entry.id, entry.status)

    await db.commit()
    await db.refresh(entry)
    logger.info("queue_left", entry_id=entry.id, event_id=event_id, user_id=user_id)
    return entry


async def release_offer(
    db: AsyncSession,
    scheduler: ExpiryScheduler,
    waiting_list_id: int,
    user_id: str,
) -> WaitingListEntry:
    """Give an offer back before it lapses and pass the capacity on."""
    entry = await db.get(WaitingListEntry, waiting_list_id, populate_existing=True)
    if not entry:
        raise OfferNotFound(waiting_list_id)
    if entry.user_id != user_id:
        raise OfferOwnershipMismatch(waiting_list_id)
    if entry.status != WaitingListStatus.OFFERED:
        raise OfferInvalidState(waiting_list_id, entry.status)

    released = await db.execute(
        update(WaitingListEntry)
        .where(
            WaitingListEntry.id == waiting_list_id,
            WaitingListEntry.status == WaitingListStatus.OFFERED,
        )
        .values(status=WaitingListStatus.EXPIRED, offer_expires_at=clock.now_ms())
        .execution_options(synchronize_session=False)
    )
    if released.rowcount == 0:
        await db.rollback()
        await db.refresh(entry)
        raise OfferInvalidState(waiting_list_id, entry.status)

    await db.commit()
    await db.refresh(entry)
    record_expiry("release")
    logger.info("offer_released", entry_id=entry.id, event_id=entry.event_id, user_id=user_id)

    event_id = entry.event_id
    db.expunge(entry)
    await waitlist_service.nudge_queue(db, scheduler, event_id)
    return entry
