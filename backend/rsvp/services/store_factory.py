"""
Membership store factory.
Configures which backend holds event membership.
"""

from typing import Optional

from rsvp.core.config import get_settings
from rsvp.services.interfaces.directory import IdentityDirectory, PassthroughDirectory
from rsvp.services.interfaces.membership import MembershipStore
from rsvp.services.interfaces.memory_store import InMemoryMembershipStore


def build_membership_store(backend: str) -> MembershipStore:
    """
    Build the configured store.

    - sql: SqlMembershipStore (default, durable)
    - redis: RedisMembershipStore (high-contention)
    - memory: InMemoryMembershipStore (single process, not durable)

    Backends are imported lazily so a deployment only needs its own driver.
    """
    settings = get_settings()

    if backend == "redis":
        from rsvp.infrastructure.redis_client import get_redis
        from rsvp.services.redis_store import RedisMembershipStore

        return RedisMembershipStore(get_redis(), prefix=settings.REDIS_KEY_PREFIX)
    if backend == "memory":
        return InMemoryMembershipStore()
    if backend == "sql":
        from rsvp.db.session import get_engine
        from rsvp.services.membership_store import SqlMembershipStore

        return SqlMembershipStore(get_engine())
    raise ValueError(f"Unknown MEMBERSHIP_STORE: {backend!r}")


def build_identity_directory(kind: str) -> IdentityDirectory:
    if kind == "sql":
        from rsvp.db.session import get_engine
        from rsvp.services.directory_service import SqlIdentityDirectory

        return SqlIdentityDirectory(get_engine())
    return PassthroughDirectory()


# Singleton instances
_store: Optional[MembershipStore] = None
_directory: Optional[IdentityDirectory] = None


def get_membership_store() -> MembershipStore:
    """Get membership store singleton."""
    global _store
    if _store is None:
        _store = build_membership_store(get_settings().MEMBERSHIP_STORE)
    return _store


def get_identity_directory() -> IdentityDirectory:
    """Get identity directory singleton."""
    global _directory
    if _directory is None:
        _directory = build_identity_directory(get_settings().IDENTITY_DIRECTORY)
    return _directory


async def close_membership_store() -> None:
    global _store, _directory
    if _store is not None:
        await _store.close()
    _store = None
    _directory = None
