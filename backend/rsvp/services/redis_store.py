"""
Redis membership store for high-contention scenarios.

Every conditional mutation is a Lua script, so Redis evaluates the check and
the write as one step against the live keys; concurrent joiners of the same
event are serialized by Redis itself.

Key layout (prefix from settings, default "rsvp"):
  {prefix}:event:{id}             hash: owner_id, capacity, title, description, date, location
  {prefix}:event:{id}:attendees   set of principal ids
  {prefix}:events                 sorted set of event ids scored by start time

Unlike a cache, this store is authoritative: on Redis failure it fails closed
(StoreUnavailable), never admitting blindly.
"""

import uuid
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Mapping, Optional

import redis.asyncio as redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from rsvp.core.errors import EventNotFound, InvalidCapacityEdit, NotEventOwner, StoreUnavailable
from rsvp.core.logging import get_logger
from rsvp.core.metrics import record_store_error, record_store_operation
from rsvp.infrastructure.redis_client import load_script
from rsvp.services.interfaces.membership import (
    EventDraft,
    EventSnapshot,
    MembershipStore,
    MutationResult,
    editable_changes,
)

logger = get_logger(__name__)

# Script return codes
ADDED_OR_REMOVED = 1
NO_SUCH_EVENT = -1
NOT_OWNER = -2
BELOW_ATTENDANCE = -3


class RedisMembershipStore(MembershipStore):
    """
    Redis-based membership store.

    Use when:
    - Thousands of concurrent joiners per event
    - Admission latency matters more than relational queries
    """

    backend = "redis"

    def __init__(self, client: redis.Redis, prefix: str = "rsvp"):
        self.redis = client
        self.prefix = prefix
        self._add_member = client.register_script(load_script("add_member"))
        self._remove_member = client.register_script(load_script("remove_member"))
        self._update_capacity = client.register_script(load_script("update_capacity"))
        self._update_details = client.register_script(load_script("update_details"))
        self._delete_event = client.register_script(load_script("delete_event"))

    def _event_key(self, event_id: str) -> str:
        return f"{self.prefix}:event:{event_id}"

    def _attendees_key(self, event_id: str) -> str:
        return f"{self.prefix}:event:{event_id}:attendees"

    @property
    def _index_key(self) -> str:
        return f"{self.prefix}:events"

    @asynccontextmanager
    async def _guard(self, operation: str):
        record_store_operation(self.backend, operation)
        try:
            yield
        except (RedisConnectionError, RedisTimeoutError) as e:
            record_store_error(self.backend)
            logger.error("store_unavailable", backend=self.backend, operation=operation, error=str(e))
            raise StoreUnavailable(operation, outcome_unknown=isinstance(e, RedisTimeoutError)) from e

    def _snapshot(self, event_id: str, data: dict, members) -> Optional[EventSnapshot]:
        if not data:
            return None
        return EventSnapshot(
            id=event_id,
            owner_id=data["owner_id"],
            capacity=int(data["capacity"]),
            attendees=frozenset(members),
            title=data.get("title", ""),
            description=data.get("description", ""),
            date=datetime.fromisoformat(data["date"]) if data.get("date") else None,
            location=data.get("location", ""),
        )

    async def _load(self, event_id: str) -> Optional[EventSnapshot]:
        async with self.redis.pipeline(transaction=True) as pipe:
            pipe.hgetall(self._event_key(event_id))
            pipe.smembers(self._attendees_key(event_id))
            data, members = await pipe.execute()
        return self._snapshot(event_id, data, members)

    async def create_event(self, draft: EventDraft, owner_id: str) -> EventSnapshot:
        event_id = uuid.uuid4().hex
        async with self._guard("create_event"):
            async with self.redis.pipeline(transaction=True) as pipe:
                pipe.hset(
                    self._event_key(event_id),
                    mapping={
                        "owner_id": owner_id,
                        "capacity": draft.capacity,
                        "title": draft.title,
                        "description": draft.description,
                        "date": draft.date.isoformat(),
                        "location": draft.location,
                    },
                )
                pipe.sadd(self._attendees_key(event_id), owner_id)
                pipe.zadd(self._index_key, {event_id: draft.date.timestamp()})
                await pipe.execute()
            return await self._load(event_id)

    async def get_event(self, event_id: str) -> Optional[EventSnapshot]:
        async with self._guard("get_event"):
            return await self._load(event_id)

    async def list_events(self) -> list[EventSnapshot]:
        async with self._guard("list_events"):
            event_ids = await self.redis.zrange(self._index_key, 0, -1)
            if not event_ids:
                return []
            async with self.redis.pipeline(transaction=True) as pipe:
                for event_id in event_ids:
                    pipe.hgetall(self._event_key(event_id))
                    pipe.smembers(self._attendees_key(event_id))
                replies = await pipe.execute()

        snapshots = []
        for i, event_id in enumerate(event_ids):
            snapshot = self._snapshot(event_id, replies[2 * i], replies[2 * i + 1])
            # Deleted between ZRANGE and the pipeline
            if snapshot is not None:
                snapshots.append(snapshot)
        return snapshots

    async def try_add_member(self, event_id: str, principal_id: str) -> MutationResult:
        async with self._guard("try_add_member"):
            code = await self._add_member(
                keys=[self._event_key(event_id), self._attendees_key(event_id)],
                args=[principal_id],
            )
            return MutationResult(applied=code == ADDED_OR_REMOVED, event=await self._load(event_id))

    async def try_remove_member(self, event_id: str, principal_id: str) -> MutationResult:
        async with self._guard("try_remove_member"):
            code = await self._remove_member(
                keys=[self._event_key(event_id), self._attendees_key(event_id)],
                args=[principal_id],
            )
            return MutationResult(applied=code == ADDED_OR_REMOVED, event=await self._load(event_id))

    async def update_capacity(self, event_id: str, new_capacity: int, owner_id: str) -> EventSnapshot:
        async with self._guard("update_capacity"):
            code = await self._update_capacity(
                keys=[self._event_key(event_id), self._attendees_key(event_id)],
                args=[owner_id, new_capacity],
            )
            snapshot = await self._load(event_id)

        if code == NO_SUCH_EVENT or snapshot is None:
            raise EventNotFound(event_id)
        if code == NOT_OWNER:
            raise InvalidCapacityEdit(event_id, InvalidCapacityEdit.NOT_OWNER)
        if code == BELOW_ATTENDANCE:
            raise InvalidCapacityEdit(event_id, InvalidCapacityEdit.BELOW_ATTENDANCE, snapshot.attendee_count)
        return snapshot

    async def update_details(self, event_id: str, owner_id: str, changes: Mapping[str, Any]) -> EventSnapshot:
        values = editable_changes(changes)
        score = ""
        fields = []
        for key, value in values.items():
            if key == "date":
                score = str(value.timestamp())
                value = value.isoformat()
            fields.extend([key, value])

        async with self._guard("update_details"):
            code = await self._update_details(
                keys=[self._event_key(event_id), self._index_key],
                args=[owner_id, event_id, score, *fields],
            )
            snapshot = await self._load(event_id)

        if code == NO_SUCH_EVENT or snapshot is None:
            raise EventNotFound(event_id)
        if code == NOT_OWNER:
            raise NotEventOwner(event_id, "update")
        return snapshot

    async def delete_event(self, event_id: str, owner_id: str) -> None:
        async with self._guard("delete_event"):
            code = await self._delete_event(
                keys=[self._event_key(event_id), self._attendees_key(event_id), self._index_key],
                args=[owner_id, event_id],
            )
        if code == NO_SUCH_EVENT:
            raise EventNotFound(event_id)
        if code == NOT_OWNER:
            raise NotEventOwner(event_id, "delete")

    async def health(self) -> dict:
        try:
            await self.redis.ping()
            return {"status": "ok", "backend": self.backend}
        except Exception as e:
            return {"status": "error", "backend": self.backend, "error": str(e)}

    async def close(self) -> None:
        await self.redis.aclose()
