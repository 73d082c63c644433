"""
Event service handling creation, listing, metadata edits and deletion.
Membership changes go through the AdmissionController instead.
"""

from datetime import datetime, timezone
from typing import Any, Mapping, Optional

from rsvp.core.errors import EventNotFound, InvalidEventDetails, NotEventOwner
from rsvp.core.logging import get_logger
from rsvp.services.interfaces.membership import EventDraft, EventSnapshot, MembershipStore

logger = get_logger(__name__)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _require_future(value: datetime) -> datetime:
    value = as_utc(value)
    if value <= datetime.now(timezone.utc):
        raise InvalidEventDetails("Event date must be in the future")
    return value


class EventService:

    def __init__(self, store: MembershipStore):
        self.store = store

    async def create_event(self, draft: EventDraft, owner_id: str) -> EventSnapshot:
        """Create an event; the owner is admitted as its first attendee."""
        if draft.capacity < 1:
            raise InvalidEventDetails("Capacity must be at least 1")
        draft = EventDraft(
            title=draft.title,
            description=draft.description,
            date=_require_future(draft.date),
            location=draft.location,
            capacity=draft.capacity,
        )

        event = await self.store.create_event(draft, owner_id)
        logger.info("event_created", event_id=event.id, owner_id=owner_id, capacity=event.capacity)
        return event

    async def get_event(self, event_id: str) -> EventSnapshot:
        event = await self.store.get_event(event_id)
        if event is None:
            raise EventNotFound(event_id)
        return event

    async def list_events(self) -> list[EventSnapshot]:
        return await self.store.list_events()

    async def update_details(
        self,
        event_id: str,
        owner_id: str,
        changes: Mapping[str, Any],
    ) -> EventSnapshot:
        current = await self.get_event(event_id)
        if current.owner_id != owner_id:
            raise NotEventOwner(event_id, "update")

        values = dict(changes)
        date: Optional[datetime] = values.get("date")
        if date is not None:
            values["date"] = _require_future(date)

        event = await self.store.update_details(event_id, owner_id, values)
        logger.info("event_updated", event_id=event_id, fields=sorted(k for k, v in values.items() if v is not None))
        return event

    async def delete_event(self, event_id: str, owner_id: str) -> None:
        await self.store.delete_event(event_id, owner_id)
        logger.info("event_deleted", event_id=event_id, owner_id=owner_id)
