"""
Identity resolution against the users table.
"""

from typing import Iterable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncEngine

from rsvp.core.logging import get_logger
from rsvp.db.session import guarded_session, make_session_factory
from rsvp.models.user import User
from rsvp.services.interfaces.directory import AttendeeIdentity, IdentityDirectory

logger = get_logger(__name__)


class SqlIdentityDirectory(IdentityDirectory):
    """
    Reads display data from the users table.

    Raises StoreUnavailable when the database cannot be reached. On join and
    leave that happens after the membership change is stored; a retry then
    answers already_member / not_member.
    """

    backend = "sql"

    def __init__(self, engine: AsyncEngine):
        self._session_factory = make_session_factory(engine)

    async def resolve(self, principal_ids: Iterable[str]) -> list[AttendeeIdentity]:
        ids = sorted(set(principal_ids))
        if not ids:
            return []
        async with guarded_session(self._session_factory, self.backend, "resolve_identities") as session:
            result = await session.execute(
                select(User.id, User.name, User.email).where(User.id.in_(ids))
            )
            known = {row.id: AttendeeIdentity(id=row.id, name=row.name, email=row.email) for row in result}
        missing = len(ids) - len(known)
        if missing:
            logger.debug("identities_unresolved", count=missing)
        return [known.get(pid, AttendeeIdentity(id=pid)) for pid in ids]
