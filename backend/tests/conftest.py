"""
Pytest fixtures for test database, client, and authentication.

Every test gets a fresh schema on a throwaway database. TEST_DATABASE_URL
points at a real server when set; otherwise a SQLite file under the test's
tmp_path is used through aiosqlite. A file (not :memory:) lets tests open
a second, independent session to play a concurrent caller.
"""

import os
from datetime import datetime, timezone, timedelta
from typing import AsyncGenerator, Optional

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker

import ticketqueue.models  # noqa: F401 - register tables on Base.metadata
from ticketqueue.main import app
from ticketqueue.db.base import Base
from ticketqueue.db.session import get_db
from ticketqueue.core.security import create_access_token
from ticketqueue.models.event import Event, TicketType
from ticketqueue.models.waiting_list import WaitingListEntry
from ticketqueue.services.interfaces.expiry_scheduler import ExpiryScheduler
from ticketqueue.services.interfaces.rate_limiter import RateLimiter, RateLimitStatus
from ticketqueue.services.strategy_factory import get_expiry_scheduler

ORGANIZER_ID = "organizer-1"
USER_ID = "user-1"


class RecordingScheduler(ExpiryScheduler):
    """Collects schedule() calls instead of starting timers."""

    def __init__(self):
        self.calls: list[tuple[int, int, int]] = []

    async def schedule(self, entry_id: int, event_id: int, delay_ms: int) -> None:
        self.calls.append((entry_id, event_id, delay_ms))

    @property
    def entry_ids(self) -> list[int]:
        return [entry_id for entry_id, _, _ in self.calls]


class UnlimitedRateLimiter(RateLimiter):
    def __init__(self):
        super().__init__(rate=0, period_ms=0)

    async def limit(self, key: str, action: str) -> RateLimitStatus:
        return RateLimitStatus(ok=True)


@pytest_asyncio.fixture(scope="function")
async def engine(tmp_path):
    url = os.environ.get("TEST_DATABASE_URL") or f"sqlite+aiosqlite:///{tmp_path / 'ticketqueue_test.db'}"
    test_engine = create_async_engine(url, echo=False)
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    yield test_engine

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def scheduler() -> RecordingScheduler:
    return RecordingScheduler()


@pytest.fixture
def limiter() -> RateLimiter:
    return UnlimitedRateLimiter()


@pytest_asyncio.fixture(scope="function")
async def client(db_session: AsyncSession, scheduler: RecordingScheduler) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client that overrides the DB and scheduler dependencies."""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_expiry_scheduler] = lambda: scheduler

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


def headers_for(user_id: str) -> dict:
    return {"Authorization": f"Bearer {create_access_token(data={'sub': user_id})}"}


@pytest.fixture
def auth_headers() -> dict:
    """Authorization headers with Bearer token for USER_ID."""
    return headers_for(USER_ID)


@pytest.fixture
def organizer_headers() -> dict:
    return headers_for(ORGANIZER_ID)


@pytest.fixture
def bearer():
    """Authorization headers for any user id."""
    return headers_for


@pytest_asyncio.fixture
async def make_event(db_session: AsyncSession):
    """
    Factory for events. ticket_types is a list of (id, price, quantity).
    """

    async def _make(
        total_tickets: int = 10,
        ticket_types: Optional[list[tuple[str, float, int]]] = None,
        organizer_id: str = ORGANIZER_ID,
        is_cancelled: bool = False,
    ) -> Event:
        event = Event(
            title="Test Concert",
            description="A test event",
            date=datetime.now(timezone.utc) + timedelta(days=30),
            location="Test Venue",
            organizer_id=organizer_id,
            total_tickets=total_tickets,
            price=25.0,
            is_cancelled=is_cancelled,
            version=1,
            ticket_types=[
                TicketType(
                    id=type_id,
                    name=type_id.upper(),
                    price=price,
                    quantity=quantity,
                    remaining=quantity,
                    is_sold_out=False,
                    position=position,
                )
                for position, (type_id, price, quantity) in enumerate(ticket_types or [])
            ],
        )
        db_session.add(event)
        await db_session.commit()
        await db_session.refresh(event)
        return event

    return _make


@pytest_asyncio.fixture
async def make_entry(db_session: AsyncSession):
    """Insert a waiting list entry directly, bypassing admission."""

    async def _make(
        event_id: int,
        user_id: str,
        status: str = "waiting",
        offer_expires_at: Optional[int] = None,
        ticket_type_id: Optional[str] = None,
        quantity: int = 1,
    ) -> WaitingListEntry:
        entry = WaitingListEntry(
            event_id=event_id,
            user_id=user_id,
            status=status,
            offer_expires_at=offer_expires_at,
            ticket_type_id=ticket_type_id,
            quantity=quantity,
        )
        db_session.add(entry)
        await db_session.commit()
        await db_session.refresh(entry)
        return entry

    return _make


class FrozenClock:
    def __init__(self, now: int):
        self.now = now

    def advance(self, ms: int) -> int:
        self.now += ms
        return self.now


@pytest.fixture
def frozen_clock(monkeypatch) -> FrozenClock:
    """Pin clock.now_ms() so offer deadlines are exact."""
    from ticketqueue.core import clock

    frozen = FrozenClock(1_700_000_000_000)
    monkeypatch.setattr(clock, "now_ms", lambda: frozen.now)
    return frozen
