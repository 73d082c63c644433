"""
Pytest fixtures for membership stores, the admission controller and the HTTP client.

Every store-backed fixture is parametrized over the backends:
- memory: InMemoryMembershipStore
- sql: SqlMembershipStore on an in-memory SQLite database (aiosqlite)
- redis: RedisMembershipStore on fakeredis (skipped unless fakeredis and lupa are installed)
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone, timedelta
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import StaticPool

from rsvp.main import app
from rsvp.core.security import create_access_token
from rsvp.db.base import Base
from rsvp.services.admission_service import AdmissionController
from rsvp.services.interfaces.directory import IdentityDirectory, PassthroughDirectory
from rsvp.services.interfaces.membership import EventDraft, EventSnapshot, MembershipStore
from rsvp.services.interfaces.memory_store import InMemoryMembershipStore
from rsvp.services.membership_store import SqlMembershipStore
from rsvp.services.store_factory import get_identity_directory, get_membership_store

# Single shared connection so every session sees the same in-memory database
TEST_DATABASE_URL = "sqlite+aiosqlite://"

OWNER_ID = "user-owner"


def future_date(days: int = 30) -> datetime:
    return datetime.now(timezone.utc) + timedelta(days=days)


def make_draft(capacity: int = 100, title: str = "Test Concert", days: int = 30) -> EventDraft:
    return EventDraft(
        title=title,
        description="A test event",
        date=future_date(days),
        location="Test Venue",
        capacity=capacity,
    )


def auth_headers_for(user_id: str) -> dict:
    """Authorization headers with a Bearer token for user_id."""
    return {"Authorization": f"Bearer {create_access_token(data={'sub': user_id})}"}


async def create_sql_engine() -> AsyncEngine:
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    return engine


@pytest_asyncio.fixture
async def sql_engine() -> AsyncGenerator[AsyncEngine, None]:
    engine = await create_sql_engine()
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture(params=["memory", "sql", "redis"])
async def store(request) -> AsyncGenerator[MembershipStore, None]:
    """A fresh, empty membership store per test, once per backend."""
    if request.param == "memory":
        yield InMemoryMembershipStore()

    elif request.param == "sql":
        engine = await create_sql_engine()
        yield SqlMembershipStore(engine)
        await engine.dispose()

    else:
        pytest.importorskip("lupa")
        fakeredis = pytest.importorskip("fakeredis")
        from rsvp.services.redis_store import RedisMembershipStore

        client = fakeredis.FakeAsyncRedis(server=fakeredis.FakeServer(), decode_responses=True)
        yield RedisMembershipStore(client, prefix="test")
        await client.aclose()


@pytest.fixture
def controller(store: MembershipStore) -> AdmissionController:
    return AdmissionController(store, timeout=5.0)


@pytest_asyncio.fixture
async def test_event(store: MembershipStore) -> EventSnapshot:
    """An event with 100 spots, owner already attending."""
    return await store.create_event(make_draft(capacity=100), OWNER_ID)


@pytest_asyncio.fixture
async def small_event(store: MembershipStore) -> EventSnapshot:
    """An event with capacity 2: the owner plus one free spot."""
    return await store.create_event(make_draft(capacity=2, title="Small Room"), OWNER_ID)


@asynccontextmanager
async def api_client(store: MembershipStore, directory: IdentityDirectory):
    """HTTP client with the store and identity directory overridden."""
    app.dependency_overrides[get_membership_store] = lambda: store
    app.dependency_overrides[get_identity_directory] = lambda: directory
    transport = ASGITransport(app=app)
    try:
        async with AsyncClient(transport=transport, base_url="http://test") as ac:
            yield ac
    finally:
        app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def client(store: MembershipStore) -> AsyncGenerator[AsyncClient, None]:
    async with api_client(store, PassthroughDirectory()) as ac:
        yield ac


@pytest.fixture
def owner_headers() -> dict:
    return auth_headers_for(OWNER_ID)


@pytest.fixture
def guest_headers() -> dict:
    return auth_headers_for("user-guest")
