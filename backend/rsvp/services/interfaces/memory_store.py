"""
In-memory membership store.
One asyncio.Lock per event makes every conditional mutation atomic.
"""

import asyncio
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Mapping, Optional

from rsvp.core.errors import EventNotFound, InvalidCapacityEdit, NotEventOwner
from rsvp.services.interfaces.membership import (
    EventDraft,
    EventSnapshot,
    MembershipStore,
    MutationResult,
    editable_changes,
)


@dataclass
class _EventRecord:
    id: str
    owner_id: str
    capacity: int
    title: str
    description: str
    date: datetime
    location: str
    attendees: set = field(default_factory=set)

    def snapshot(self) -> EventSnapshot:
        return EventSnapshot(
            id=self.id,
            owner_id=self.owner_id,
            capacity=self.capacity,
            attendees=frozenset(self.attendees),
            title=self.title,
            description=self.description,
            date=self.date,
            location=self.location,
        )


class InMemoryMembershipStore(MembershipStore):
    """
    Process-local store for development, tests and experiments.

    `latency` simulates a store round trip (seconds) before each call and
    again while the lock is held for a write, so concurrent callers really
    interleave at the await points.

    Use when:
    - Single process, no durability needed
    - Exercising admission logic under controlled contention
    """

    backend = "memory"

    def __init__(self, latency: float = 0.0):
        self._events: dict[str, _EventRecord] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._latency = latency

    async def _round_trip(self) -> None:
        # sleep(0) still yields to the loop
        await asyncio.sleep(self._latency)

    def _lock_for(self, event_id: str) -> asyncio.Lock:
        # Locks exist only for live events; unknown ids never allocate one
        lock = self._locks.get(event_id)
        if lock is None:
            raise EventNotFound(event_id)
        return lock

    async def create_event(self, draft: EventDraft, owner_id: str) -> EventSnapshot:
        await self._round_trip()
        record = _EventRecord(
            id=uuid.uuid4().hex,
            owner_id=owner_id,
            capacity=draft.capacity,
            title=draft.title,
            description=draft.description,
            date=draft.date,
            location=draft.location,
            attendees={owner_id},
        )
        self._locks[record.id] = asyncio.Lock()
        self._events[record.id] = record
        return record.snapshot()

    async def get_event(self, event_id: str) -> Optional[EventSnapshot]:
        await self._round_trip()
        record = self._events.get(event_id)
        return record.snapshot() if record else None

    async def list_events(self) -> list[EventSnapshot]:
        await self._round_trip()
        records = sorted(self._events.values(), key=lambda r: (r.date, r.id))
        return [r.snapshot() for r in records]

    async def try_add_member(self, event_id: str, principal_id: str) -> MutationResult:
        await self._round_trip()
        lock = self._locks.get(event_id)
        if lock is None:
            return MutationResult(applied=False, event=None)

        async with lock:
            record = self._events.get(event_id)
            if record is None:
                return MutationResult(applied=False, event=None)

            if principal_id in record.attendees or len(record.attendees) >= record.capacity:
                return MutationResult(applied=False, event=record.snapshot())

            await self._round_trip()
            record.attendees.add(principal_id)
            return MutationResult(applied=True, event=record.snapshot())

    async def try_remove_member(self, event_id: str, principal_id: str) -> MutationResult:
        await self._round_trip()
        lock = self._locks.get(event_id)
        if lock is None:
            return MutationResult(applied=False, event=None)

        async with lock:
            record = self._events.get(event_id)
            if record is None:
                return MutationResult(applied=False, event=None)

            if principal_id not in record.attendees:
                return MutationResult(applied=False, event=record.snapshot())

            await self._round_trip()
            record.attendees.discard(principal_id)
            return MutationResult(applied=True, event=record.snapshot())

    async def update_capacity(self, event_id: str, new_capacity: int, owner_id: str) -> EventSnapshot:
        await self._round_trip()
        async with self._lock_for(event_id):
            record = self._require(event_id)
            if record.owner_id != owner_id:
                raise InvalidCapacityEdit(event_id, InvalidCapacityEdit.NOT_OWNER)
            if new_capacity < len(record.attendees):
                raise InvalidCapacityEdit(
                    event_id, InvalidCapacityEdit.BELOW_ATTENDANCE, len(record.attendees)
                )
            record.capacity = new_capacity
            return record.snapshot()

    async def update_details(self, event_id: str, owner_id: str, changes: Mapping[str, Any]) -> EventSnapshot:
        values = editable_changes(changes)
        await self._round_trip()
        async with self._lock_for(event_id):
            record = self._require(event_id)
            if record.owner_id != owner_id:
                raise NotEventOwner(event_id, "update")
            for key, value in values.items():
                setattr(record, key, value)
            return record.snapshot()

    async def delete_event(self, event_id: str, owner_id: str) -> None:
        await self._round_trip()
        async with self._lock_for(event_id):
            record = self._require(event_id)
            if record.owner_id != owner_id:
                raise NotEventOwner(event_id, "delete")
            del self._events[event_id]
        # Waiters still holding the old lock find no record and report None
        self._locks.pop(event_id, None)

    async def health(self) -> dict:
        return {"status": "ok", "backend": self.backend, "events": len(self._events)}

    def _require(self, event_id: str) -> _EventRecord:
        record = self._events.get(event_id)
        if record is None:
            raise EventNotFound(event_id)
        return record
