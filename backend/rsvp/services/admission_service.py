"""
Admission control for event membership.

The controller is stateless: it holds no locks and no shared mutable state.
Each decision is one pre-read, one atomic conditional mutation on the
MembershipStore, and a classification of the confirmed snapshot the store
returns. The pre-read only fails fast with a precise error; the conditional
mutation is the sole authority, and a rejected mutation is classified from
the snapshot returned with it, never from the pre-read.

Retry semantics:
  Business outcomes (NotFound, AlreadyMember, CapacityExceeded, ...) are
  final and never retried here. StoreUnavailable is the only retryable kind.
  Re-issuing join/leave after an ambiguous failure is safe: a retried join
  either succeeds once or reports AlreadyMember; a retried leave reports
  NotMember or succeeds.
"""

import asyncio
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Awaitable, Optional, TypeVar

from rsvp.core.errors import (
    AlreadyMember,
    CapacityExceeded,
    EventNotFound,
    InvalidCapacityEdit,
    NotMember,
    OwnerCannotLeave,
    RsvpError,
    StoreUnavailable,
)
from rsvp.core.logging import get_logger
from rsvp.core.metrics import admission_latency, record_admission, record_lost_race, record_store_error
from rsvp.services.interfaces.membership import EventSnapshot, MembershipStore

logger = get_logger(__name__)

T = TypeVar("T")

# A timeout on these leaves the outcome unknown to the caller
MUTATIONS = frozenset({"try_add_member", "try_remove_member", "update_capacity"})


@dataclass(frozen=True)
class Attendance:
    attendee_count: int
    capacity: int
    available_spots: int
    attendees: frozenset

    @classmethod
    def from_snapshot(cls, snapshot: EventSnapshot) -> "Attendance":
        return cls(
            attendee_count=snapshot.attendee_count,
            capacity=snapshot.capacity,
            available_spots=snapshot.available_spots,
            attendees=snapshot.attendees,
        )


@contextmanager
def _decision(operation: str):
    """Time a decision and count its outcome."""
    with admission_latency.labels(operation=operation).time():
        try:
            yield
        except RsvpError as e:
            record_admission(operation, e.kind.value)
            raise
        record_admission(operation, "ok")


class AdmissionController:

    def __init__(self, store: MembershipStore, timeout: Optional[float] = None):
        self.store = store
        self.timeout = timeout

    async def _call(self, operation: str, awaitable: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(awaitable, timeout=self.timeout)
        except asyncio.TimeoutError as e:
            record_store_error(self.store.backend)
            logger.error("store_timeout", operation=operation, timeout=self.timeout)
            raise StoreUnavailable(operation, outcome_unknown=operation in MUTATIONS) from e

    async def _snapshot(self, event_id: str) -> EventSnapshot:
        snapshot = await self._call("get_event", self.store.get_event(event_id))
        if snapshot is None:
            raise EventNotFound(event_id)
        return snapshot

    async def join(self, event_id: str, principal_id: str) -> EventSnapshot:
        """
        Admit principal_id to the event.

        Raises:
            EventNotFound, AlreadyMember, CapacityExceeded, StoreUnavailable
        """
        with _decision("join"):
            snapshot = await self._snapshot(event_id)
            if snapshot.has_member(principal_id):
                raise AlreadyMember(event_id, principal_id)
            if snapshot.is_full:
                logger.info("join_rejected", event_id=event_id, user_id=principal_id, reason="full")
                raise CapacityExceeded(event_id, snapshot.capacity)

            result = await self._call("try_add_member", self.store.try_add_member(event_id, principal_id))
            current = result.event

            if not result.applied:
                record_lost_race("join")
                if current is None:
                    raise EventNotFound(event_id)
                if current.has_member(principal_id):
                    raise AlreadyMember(event_id, principal_id)
                logger.info("join_rejected", event_id=event_id, user_id=principal_id, reason="lost_race")
                raise CapacityExceeded(event_id, current.capacity)

            if current is None:
                # Deleted right after admission; nothing left to report
                raise EventNotFound(event_id)

            logger.info(
                "member_joined",
                event_id=event_id,
                user_id=principal_id,
                attendees=current.attendee_count,
                capacity=current.capacity,
            )
            return current

    async def leave(self, event_id: str, principal_id: str) -> EventSnapshot:
        """
        Remove principal_id from the event. The owner can never leave.

        Raises:
            EventNotFound, OwnerCannotLeave, NotMember, StoreUnavailable
        """
        with _decision("leave"):
            snapshot = await self._snapshot(event_id)
            if principal_id == snapshot.owner_id:
                raise OwnerCannotLeave(event_id)
            if not snapshot.has_member(principal_id):
                raise NotMember(event_id, principal_id)

            result = await self._call("try_remove_member", self.store.try_remove_member(event_id, principal_id))

            if not result.applied:
                # A concurrent leave got there first; the end state matches the request
                record_lost_race("leave")
                logger.info("leave_lost_race", event_id=event_id, user_id=principal_id)

            if result.event is None:
                raise EventNotFound(event_id)

            logger.info(
                "member_left",
                event_id=event_id,
                user_id=principal_id,
                attendees=result.event.attendee_count,
            )
            return result.event

    async def get_attendance(self, event_id: str) -> Attendance:
        return Attendance.from_snapshot(await self._snapshot(event_id))

    async def update_capacity(self, event_id: str, new_capacity: int, owner_id: str) -> EventSnapshot:
        """
        Change capacity as the owner; never below the current attendee count.

        Raises:
            EventNotFound, InvalidCapacityEdit, StoreUnavailable
        """
        with _decision("capacity"):
            if new_capacity < 1:
                raise InvalidCapacityEdit(event_id, InvalidCapacityEdit.NOT_POSITIVE)

            snapshot = await self._call(
                "update_capacity", self.store.update_capacity(event_id, new_capacity, owner_id)
            )
            logger.info(
                "capacity_updated",
                event_id=event_id,
                capacity=snapshot.capacity,
                attendees=snapshot.attendee_count,
            )
            return snapshot
