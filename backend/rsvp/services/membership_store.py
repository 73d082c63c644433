"""
SQL membership store.

CONCURRENCY STRATEGY: Conditional UPDATE on the event row
==========================================================

Problem:
  Two users try to take the last spot simultaneously.
  Both read attendee_count = capacity - 1, both insert, both succeed.
  Result: Overbooking.

Solution:
  Admission is decided by one statement evaluated against the live row:

  1. UPDATE events SET attendee_count = attendee_count + 1
     WHERE id = :event_id
       AND attendee_count < capacity
       AND NOT EXISTS (SELECT 1 FROM event_attendees
                       WHERE event_id = :event_id AND user_id = :user_id)
  2. If rows_affected == 1, INSERT the attendance row in the same transaction
  3. If rows_affected == 0, nothing changed -> applied=False

  The UPDATE takes the event row lock, so concurrent joiners for the same
  event queue behind it and re-evaluate the predicate against the committed
  count. The composite primary key on event_attendees catches a duplicate
  admission of the same principal that slipped past NOT EXISTS; the
  IntegrityError rolls the increment back with it.

  Leave, capacity edits and deletion lock the event row first as well, so
  every mutation of one event is serialized in the same order and the DB
  CHECK constraints (attendee_count between 0 and capacity) are never hit.

  No retries: each statement applies at most once, so a call that fails
  ambiguously is safe to re-issue through the admission controller.
"""

import uuid
from collections import OrderedDict
from typing import Any, Mapping, Optional

from sqlalchemy import delete, select, text, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from rsvp.core.errors import EventNotFound, InvalidCapacityEdit, NotEventOwner
from rsvp.core.logging import get_logger
from rsvp.db.session import guarded_session, make_session_factory
from rsvp.models.attendee import EventAttendee
from rsvp.models.event import Event
from rsvp.services.interfaces.membership import (
    EventDraft,
    EventSnapshot,
    MembershipStore,
    MutationResult,
    editable_changes,
)

logger = get_logger(__name__)


_SNAPSHOT_COLUMNS = (
    Event.id,
    Event.owner_id,
    Event.capacity,
    Event.title,
    Event.description,
    Event.date,
    Event.location,
    EventAttendee.user_id,
)


class _LostRace(Exception):
    """Rolls back a transaction whose second statement matched nothing."""


def _snapshots_from_rows(rows) -> list[EventSnapshot]:
    # Rows come from one outer-joined SELECT: (event columns..., user_id or NULL)
    grouped: "OrderedDict[str, tuple]" = OrderedDict()
    members: dict[str, set] = {}
    for row in rows:
        event_id = row[0]
        if event_id not in grouped:
            grouped[event_id] = row[:7]
            members[event_id] = set()
        if row[7] is not None:
            members[event_id].add(row[7])

    return [
        EventSnapshot(
            id=event_id,
            owner_id=owner_id,
            capacity=capacity,
            attendees=frozenset(members[event_id]),
            title=title,
            description=description,
            date=date,
            location=location,
        )
        for event_id, (_, owner_id, capacity, title, description, date, location) in grouped.items()
    ]


class SqlMembershipStore(MembershipStore):
    """
    PostgreSQL-backed store (any SQLAlchemy async dialect works).

    Use when:
    - Durable membership is required
    - Event metadata already lives in the relational database
    """

    backend = "sql"

    def __init__(self, engine: AsyncEngine):
        self.engine = engine
        self._session_factory = make_session_factory(engine)

    def _session(self, operation: str):
        return guarded_session(self._session_factory, self.backend, operation)

    async def _load(self, session: AsyncSession, event_id: str) -> Optional[EventSnapshot]:
        # Single statement so capacity and attendee rows come from one snapshot
        result = await session.execute(
            select(*_SNAPSHOT_COLUMNS)
            .outerjoin(EventAttendee, EventAttendee.event_id == Event.id)
            .where(Event.id == event_id)
        )
        snapshots = _snapshots_from_rows(result.all())
        return snapshots[0] if snapshots else None

    async def _lock_owner(self, session: AsyncSession, event_id: str) -> Optional[str]:
        return await session.scalar(
            select(Event.owner_id).where(Event.id == event_id).with_for_update()
        )

    async def create_event(self, draft: EventDraft, owner_id: str) -> EventSnapshot:
        event_id = uuid.uuid4().hex
        async with self._session("create_event") as session:
            async with session.begin():
                session.add(
                    Event(
                        id=event_id,
                        title=draft.title,
                        description=draft.description,
                        date=draft.date,
                        location=draft.location,
                        capacity=draft.capacity,
                        attendee_count=1,
                        owner_id=owner_id,
                    )
                )
                # Flush the event first so the attendance FK resolves
                await session.flush()
                session.add(EventAttendee(event_id=event_id, user_id=owner_id))
            return await self._load(session, event_id)

    async def get_event(self, event_id: str) -> Optional[EventSnapshot]:
        async with self._session("get_event") as session:
            return await self._load(session, event_id)

    async def list_events(self) -> list[EventSnapshot]:
        async with self._session("list_events") as session:
            result = await session.execute(
                select(*_SNAPSHOT_COLUMNS)
                .outerjoin(EventAttendee, EventAttendee.event_id == Event.id)
                .order_by(Event.date.asc(), Event.id.asc())
            )
            return _snapshots_from_rows(result.all())

    async def try_add_member(self, event_id: str, principal_id: str) -> MutationResult:
        async with self._session("try_add_member") as session:
            already_member = (
                select(EventAttendee.user_id)
                .where(EventAttendee.event_id == event_id, EventAttendee.user_id == principal_id)
                .exists()
            )
            applied = False
            try:
                async with session.begin():
                    result = await session.execute(
                        update(Event)
                        .where(
                            Event.id == event_id,
                            Event.attendee_count < Event.capacity,
                            ~already_member,
                        )
                        .values(attendee_count=Event.attendee_count + 1)
                        .execution_options(synchronize_session=False)
                    )
                    if result.rowcount == 1:
                        session.add(EventAttendee(event_id=event_id, user_id=principal_id))
                        await session.flush()
                        applied = True
            except IntegrityError:
                # A concurrent admission of the same principal committed first
                logger.info("add_member_duplicate", event_id=event_id, user_id=principal_id)
                applied = False

            return MutationResult(applied=applied, event=await self._load(session, event_id))

    async def try_remove_member(self, event_id: str, principal_id: str) -> MutationResult:
        async with self._session("try_remove_member") as session:
            is_member = (
                select(EventAttendee.user_id)
                .where(EventAttendee.event_id == event_id, EventAttendee.user_id == principal_id)
                .exists()
            )
            applied = False
            try:
                async with session.begin():
                    result = await session.execute(
                        update(Event)
                        .where(Event.id == event_id, Event.attendee_count > 0, is_member)
                        .values(attendee_count=Event.attendee_count - 1)
                        .execution_options(synchronize_session=False)
                    )
                    if result.rowcount == 1:
                        removed = await session.execute(
                            delete(EventAttendee)
                            .where(EventAttendee.event_id == event_id, EventAttendee.user_id == principal_id)
                            .execution_options(synchronize_session=False)
                        )
                        if removed.rowcount != 1:
                            raise _LostRace()
                        applied = True
            except _LostRace:
                applied = False

            return MutationResult(applied=applied, event=await self._load(session, event_id))

    async def update_capacity(self, event_id: str, new_capacity: int, owner_id: str) -> EventSnapshot:
        async with self._session("update_capacity") as session:
            async with session.begin():
                result = await session.execute(
                    update(Event)
                    .where(
                        Event.id == event_id,
                        Event.owner_id == owner_id,
                        Event.attendee_count <= new_capacity,
                    )
                    .values(capacity=new_capacity)
                    .execution_options(synchronize_session=False)
                )
                applied = result.rowcount == 1

            snapshot = await self._load(session, event_id)
            if snapshot is None:
                raise EventNotFound(event_id)
            if not applied:
                if snapshot.owner_id != owner_id:
                    raise InvalidCapacityEdit(event_id, InvalidCapacityEdit.NOT_OWNER)
                raise InvalidCapacityEdit(
                    event_id, InvalidCapacityEdit.BELOW_ATTENDANCE, snapshot.attendee_count
                )
            return snapshot

    async def update_details(self, event_id: str, owner_id: str, changes: Mapping[str, Any]) -> EventSnapshot:
        values = editable_changes(changes)
        async with self._session("update_details") as session:
            async with session.begin():
                owner = await self._lock_owner(session, event_id)
                if owner is None:
                    raise EventNotFound(event_id)
                if owner != owner_id:
                    raise NotEventOwner(event_id, "update")
                if values:
                    await session.execute(
                        update(Event)
                        .where(Event.id == event_id)
                        .values(**values)
                        .execution_options(synchronize_session=False)
                    )
            return await self._load(session, event_id)

    async def delete_event(self, event_id: str, owner_id: str) -> None:
        async with self._session("delete_event") as session:
            async with session.begin():
                owner = await self._lock_owner(session, event_id)
                if owner is None:
                    raise EventNotFound(event_id)
                if owner != owner_id:
                    raise NotEventOwner(event_id, "delete")
                await session.execute(delete(EventAttendee).where(EventAttendee.event_id == event_id))
                await session.execute(delete(Event).where(Event.id == event_id))

    async def health(self) -> dict:
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return {"status": "ok", "backend": self.backend}
        except Exception as e:
            return {"status": "error", "backend": self.backend, "error": str(e)}

    async def close(self) -> None:
        await self.engine.dispose()
