"""
Membership store interface.
Allows swapping the durable backend without changing admission logic.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Mapping, Optional

# Metadata fields an owner may change through update_details
EDITABLE_DETAILS = ("title", "description", "date", "location")


def editable_changes(changes: Mapping[str, Any]) -> dict:
    """Drop unset values and reject fields outside EDITABLE_DETAILS."""
    unknown = set(changes) - set(EDITABLE_DETAILS)
    if unknown:
        raise ValueError(f"Not editable: {', '.join(sorted(unknown))}")
    return {key: value for key, value in changes.items() if value is not None}


@dataclass(frozen=True)
class EventDraft:
    title: str
    description: str
    date: datetime
    location: str
    capacity: int


@dataclass(frozen=True)
class EventSnapshot:
    """Point-in-time view of one event as the store last confirmed it."""

    id: str
    owner_id: str
    capacity: int
    attendees: frozenset
    title: str = ""
    description: str = ""
    date: Optional[datetime] = None
    location: str = ""

    @property
    def attendee_count(self) -> int:
        return len(self.attendees)

    @property
    def available_spots(self) -> int:
        return self.capacity - self.attendee_count

    @property
    def is_full(self) -> bool:
        return self.attendee_count >= self.capacity

    def has_member(self, principal_id: str) -> bool:
        return principal_id in self.attendees


@dataclass(frozen=True)
class MutationResult:
    """
    Outcome of a conditional membership mutation.

    applied=False is a normal negative outcome, not an error. `event` is the
    snapshot read after the mutation, or None if the event no longer exists.
    """

    applied: bool
    event: Optional[EventSnapshot]


class MembershipStore(ABC):
    """
    Interface for durable event membership.

    Implementations:
    - SqlMembershipStore: conditional UPDATE + unique constraint in one transaction
    - RedisMembershipStore: server-side Lua scripts
    - InMemoryMembershipStore: per-event asyncio.Lock

    try_add_member / try_remove_member / update_capacity must each be a single
    atomic step evaluated against live state, linearizable per event. None of
    them retries internally, so each call applies at most once.
    """

    backend: str = "abstract"

    @abstractmethod
    async def create_event(self, draft: EventDraft, owner_id: str) -> EventSnapshot:
        """Persist a new event with the owner as its first attendee."""
        pass

    @abstractmethod
    async def get_event(self, event_id: str) -> Optional[EventSnapshot]:
        pass

    @abstractmethod
    async def list_events(self) -> list[EventSnapshot]:
        """All events ordered by date, then id."""
        pass

    @abstractmethod
    async def try_add_member(self, event_id: str, principal_id: str) -> MutationResult:
        """
        Add principal_id only if absent and the event is below capacity.

        Two callers racing for the last spot cannot both get applied=True.
        """
        pass

    @abstractmethod
    async def try_remove_member(self, event_id: str, principal_id: str) -> MutationResult:
        """Remove principal_id if present; absent member reports applied=False."""
        pass

    @abstractmethod
    async def update_capacity(self, event_id: str, new_capacity: int, owner_id: str) -> EventSnapshot:
        """
        Set capacity if owner_id owns the event and new_capacity covers the
        current attendee count, atomically with respect to joins.

        Raises:
            EventNotFound
            InvalidCapacityEdit (reason below_attendance or not_owner)
        """
        pass

    @abstractmethod
    async def update_details(self, event_id: str, owner_id: str, changes: Mapping[str, Any]) -> EventSnapshot:
        """
        Apply metadata changes (keys from EDITABLE_DETAILS) as the owner.

        Raises:
            EventNotFound
            NotEventOwner
        """
        pass

    @abstractmethod
    async def delete_event(self, event_id: str, owner_id: str) -> None:
        """
        Remove the event and its attendance, serialized against admission
        so no later join can succeed against it.

        Raises:
            EventNotFound
            NotEventOwner
        """
        pass

    @abstractmethod
    async def health(self) -> dict:
        """Backend status for the health endpoint. Must not raise."""
        pass

    async def close(self) -> None:
        """Release backend resources on shutdown."""
        return None
