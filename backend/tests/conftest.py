# tests/conftest.py

import os

# Configuration must be in place before the application modules are imported.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("JWT_SECRET", "test-secret-key-with-enough-length-for-hs256")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("PORTAL_OWNER_EMAIL", "owner@example.com")
os.environ.setdefault("BACKEND_URL", "http://testserver")
os.environ.setdefault("ADDITIONAL_CORS_ORIGINS", "http://localhost:5173")
os.environ["RESEND_API_KEY"] = ""

from datetime import datetime, timezone

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from event_portal.database import enable_sqlite_foreign_keys, get_session
from event_portal.main import app
from event_portal.models import Base
from event_portal.services.notifications import get_notification_dispatcher
from event_portal.utils import get_now

from tests.utils.fakes import Clock, RecordingDispatcher, RecordingEmailService


@pytest.fixture
async def engine():
    """A fresh in-memory database per test, with foreign keys enforced."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    enable_sqlite_foreign_keys(engine)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def clock():
    return Clock(datetime(2030, 6, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def email_service():
    return RecordingEmailService()


@pytest.fixture
def dispatcher(email_service):
    return RecordingDispatcher(email_service)


@pytest.fixture
async def client(session_factory, clock, dispatcher):
    """
    Provides an AsyncClient wired to the test database, a movable clock and a
    dispatcher that records notifications instead of sending them.
    """

    async def override_get_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_now] = clock
    app.dependency_overrides[get_notification_dispatcher] = lambda: dispatcher

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver") as client:
        yield client

    app.dependency_overrides.clear()
