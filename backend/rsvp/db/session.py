"""
Async engine and session factory.

The engine is created lazily so importing the app never opens a pool; the
SQL membership store and identity directory share it, along with the guard
that turns connectivity failures into StoreUnavailable.
"""

import asyncio
from contextlib import asynccontextmanager
from functools import lru_cache

from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from rsvp.core.config import get_settings
from rsvp.core.errors import StoreUnavailable
from rsvp.core.logging import get_logger
from rsvp.core.metrics import record_store_error, record_store_operation

logger = get_logger(__name__)

# Connectivity problems, as opposed to constraint violations
TRANSIENT_ERRORS = (OperationalError, InterfaceError, PoolTimeoutError, OSError, asyncio.TimeoutError)


@lru_cache()
def get_engine() -> AsyncEngine:
    settings = get_settings()
    options = {"echo": settings.DEBUG, "pool_pre_ping": True}
    if not settings.DATABASE_URL.startswith("sqlite"):
        options.update(
            pool_size=settings.DB_POOL_SIZE,
            max_overflow=settings.DB_MAX_OVERFLOW,
            pool_timeout=settings.DB_POOL_TIMEOUT,
            pool_recycle=settings.DB_POOL_RECYCLE,
        )
    return create_async_engine(settings.DATABASE_URL, **options)


def make_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@asynccontextmanager
async def guarded_session(session_factory: async_sessionmaker[AsyncSession], backend: str, operation: str):
    """Open a session; transient database failures surface as StoreUnavailable."""
    record_store_operation(backend, operation)
    try:
        async with session_factory() as session:
            yield session
    except TRANSIENT_ERRORS as e:
        record_store_error(backend)
        logger.error("store_unavailable", backend=backend, operation=operation, error=str(e))
        raise StoreUnavailable(operation) from e
