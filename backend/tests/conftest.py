"""
Pytest fixtures for test database, client, and real-time components.

Uses an in-memory SQLite database (aiosqlite) with tables created and
dropped per test. Redis, the native change feed and the LLM are disabled;
tests that need a proposal source override the dependency.
"""

import os

os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["REDIS_ENABLED"] = "false"
os.environ["CHANGE_FEED"] = "none"
os.environ["PROPOSAL_SOURCE"] = "none"

from datetime import date, time, timedelta
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from roombook.main import app
from roombook.db.base import Base
from roombook.db.session import get_db
from roombook.models.booking import Booking
from roombook.models.room import Room
from roombook.services.broadcaster import EventBroadcaster
from roombook.services.change_source import ChangeSource

TEST_DATABASE_URL = "sqlite+aiosqlite://"

test_engine = create_async_engine(
    TEST_DATABASE_URL,
    echo=False,
    poolclass=StaticPool,
    connect_args={"check_same_thread": False},
)
TestSessionLocal = async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture(scope="function")
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Create tables, yield session, then drop tables for isolation."""
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with TestSessionLocal() as session:
        yield session

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest_asyncio.fixture
async def broadcaster() -> AsyncGenerator[EventBroadcaster, None]:
    # Long interval: heartbeats are exercised directly, not by waiting
    b = EventBroadcaster(heartbeat_interval=3600, queue_size=50)
    yield b
    await b.close()


@pytest_asyncio.fixture(scope="function")
async def client(
    db_session: AsyncSession, broadcaster: EventBroadcaster
) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client wired to the test session and a fresh broadcaster."""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.state.broadcaster = broadcaster
    app.state.change_source = ChangeSource(broadcaster)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def rooms(db_session: AsyncSession) -> list[Room]:
    """CSIS-101 and CSIS-102 in the registry."""
    created = [
        Room(room_id="CSIS-101", name="Lecture Hall A", room_type="Lecture Hall", capacity=120,
             features=["projector"]),
        Room(room_id="CSIS-102", name="Lecture Hall B", room_type="Lecture Hall", capacity=80,
             features=[]),
    ]
    db_session.add_all(created)
    await db_session.commit()
    return created


@pytest.fixture
def future_date() -> str:
    """A date a week out, as the ISO string clients send."""
    return (date.today() + timedelta(days=7)).isoformat()


def hhmm(value: str) -> time:
    hours, minutes = value.split(":")
    return time(int(hours), int(minutes))


async def add_booking(
    db: AsyncSession,
    booking_id: str,
    room_id: str,
    booking_date: str,
    start: str,
    end: str,
    status: str = "Approved",
    owner_role: str = "teacher",
) -> Booking:
    """Insert a booking directly, bypassing the validator."""
    booking = Booking(
        booking_id=booking_id,
        room_id=room_id,
        date=date.fromisoformat(booking_date),
        start_time=hhmm(start),
        end_time=hhmm(end),
        status=status,
        owner_role=owner_role,
    )
    db.add(booking)
    await db.commit()
    await db.refresh(booking)
    return booking
