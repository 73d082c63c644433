"""
AdmissionController tests.

Tests taking the `controller` fixture run against every backend; the stub stores force the
interleavings a pre-check cannot see (another caller winning between the
pre-read and the mutation) so each classification path is exercised.
"""

import asyncio

import pytest

from rsvp.core.errors import (
    AlreadyMember,
    CapacityExceeded,
    EventNotFound,
    InvalidCapacityEdit,
    NotMember,
    OwnerCannotLeave,
    StoreUnavailable,
)
from rsvp.services.admission_service import AdmissionController
from rsvp.services.interfaces.memory_store import InMemoryMembershipStore
from tests.conftest import OWNER_ID, make_draft


@pytest.mark.asyncio
async def test_join_admits(controller, test_event):
    event = await controller.join(test_event.id, "alice")

    assert event.has_member("alice")
    assert event.attendee_count == 2


@pytest.mark.asyncio
async def test_join_twice(controller, test_event):
    await controller.join(test_event.id, "alice")

    with pytest.raises(AlreadyMember):
        await controller.join(test_event.id, "alice")

    attendance = await controller.get_attendance(test_event.id)
    assert attendance.attendee_count == 2


@pytest.mark.asyncio
async def test_join_full(controller, small_event):
    await controller.join(small_event.id, "alice")

    with pytest.raises(CapacityExceeded) as exc_info:
        await controller.join(small_event.id, "bob")

    assert exc_info.value.capacity == 2


@pytest.mark.asyncio
async def test_join_unknown_event(controller):
    with pytest.raises(EventNotFound):
        await controller.join("does-not-exist", "alice")


@pytest.mark.asyncio
async def test_join_deleted_event(controller, store, test_event):
    await store.delete_event(test_event.id, OWNER_ID)

    with pytest.raises(EventNotFound):
        await controller.join(test_event.id, "alice")


@pytest.mark.asyncio
async def test_leave(controller, test_event):
    await controller.join(test_event.id, "alice")
    event = await controller.leave(test_event.id, "alice")

    assert not event.has_member("alice")
    assert event.attendee_count == 1


@pytest.mark.asyncio
async def test_leave_twice(controller, test_event):
    await controller.join(test_event.id, "alice")
    await controller.leave(test_event.id, "alice")

    with pytest.raises(NotMember):
        await controller.leave(test_event.id, "alice")


@pytest.mark.asyncio
async def test_owner_cannot_leave(controller, test_event):
    with pytest.raises(OwnerCannotLeave):
        await controller.leave(test_event.id, OWNER_ID)

    attendance = await controller.get_attendance(test_event.id)
    assert OWNER_ID in attendance.attendees


@pytest.mark.asyncio
async def test_leave_unknown_event(controller):
    with pytest.raises(EventNotFound):
        await controller.leave("does-not-exist", "alice")


@pytest.mark.asyncio
async def test_attendance(controller, small_event):
    await controller.join(small_event.id, "alice")
    attendance = await controller.get_attendance(small_event.id)

    assert attendance.attendee_count == 2
    assert attendance.capacity == 2
    assert attendance.available_spots == 0
    assert attendance.attendees == frozenset({OWNER_ID, "alice"})


@pytest.mark.asyncio
async def test_attendance_unknown_event(controller):
    with pytest.raises(EventNotFound):
        await controller.get_attendance("does-not-exist")


@pytest.mark.asyncio
async def test_capacity_must_be_positive(controller, test_event):
    with pytest.raises(InvalidCapacityEdit) as exc_info:
        await controller.update_capacity(test_event.id, 0, OWNER_ID)

    assert exc_info.value.reason == InvalidCapacityEdit.NOT_POSITIVE


@pytest.mark.asyncio
async def test_capacity_guard(controller, test_event):
    await controller.join(test_event.id, "alice")

    with pytest.raises(InvalidCapacityEdit):
        await controller.update_capacity(test_event.id, 1, OWNER_ID)

    event = await controller.update_capacity(test_event.id, 2, OWNER_ID)
    assert event.capacity == 2

    with pytest.raises(CapacityExceeded):
        await controller.join(test_event.id, "bob")


@pytest.mark.asyncio
async def test_raised_capacity_admits_more(controller, small_event):
    await controller.join(small_event.id, "alice")
    await controller.update_capacity(small_event.id, 3, OWNER_ID)

    event = await controller.join(small_event.id, "bob")
    assert event.attendee_count == 3


@pytest.mark.asyncio
async def test_capacity_two_scenario(controller, store):
    """Owner plus one guest fill the event; the spot changes hands."""
    event = await store.create_event(make_draft(capacity=2), "owner")

    await controller.join(event.id, "alice")
    with pytest.raises(CapacityExceeded):
        await controller.join(event.id, "bob")

    await controller.leave(event.id, "alice")
    await controller.join(event.id, "bob")
    with pytest.raises(CapacityExceeded):
        await controller.join(event.id, "alice")
    with pytest.raises(OwnerCannotLeave):
        await controller.leave(event.id, "owner")

    attendance = await controller.get_attendance(event.id)
    assert attendance.attendees == frozenset({"owner", "bob"})


class RivalJoinsFirstStore(InMemoryMembershipStore):
    """Lets `rival` take a spot between the caller's pre-read and mutation."""

    def __init__(self, rival: str):
        super().__init__()
        self.rival = rival

    async def try_add_member(self, event_id, principal_id):
        if self.rival:
            rival, self.rival = self.rival, None
            await super().try_add_member(event_id, rival)
        return await super().try_add_member(event_id, principal_id)


class RivalLeavesFirstStore(InMemoryMembershipStore):
    """Removes the principal before the caller's own removal runs."""

    async def try_remove_member(self, event_id, principal_id):
        await super().try_remove_member(event_id, principal_id)
        return await super().try_remove_member(event_id, principal_id)


class DeletedMidJoinStore(InMemoryMembershipStore):

    async def try_add_member(self, event_id, principal_id):
        record = self._events[event_id]
        await self.delete_event(event_id, record.owner_id)
        return await super().try_add_member(event_id, principal_id)


class SlowMutationStore(InMemoryMembershipStore):

    async def try_add_member(self, event_id, principal_id):
        await asyncio.sleep(1)
        return await super().try_add_member(event_id, principal_id)


@pytest.mark.asyncio
async def test_last_spot_taken_after_precheck():
    store = RivalJoinsFirstStore(rival="bob")
    controller = AdmissionController(store)
    event = await store.create_event(make_draft(capacity=2), OWNER_ID)

    with pytest.raises(CapacityExceeded):
        await controller.join(event.id, "alice")

    attendance = await controller.get_attendance(event.id)
    assert attendance.attendees == frozenset({OWNER_ID, "bob"})


@pytest.mark.asyncio
async def test_same_principal_joined_after_precheck():
    store = RivalJoinsFirstStore(rival="alice")
    controller = AdmissionController(store)
    event = await store.create_event(make_draft(capacity=5), OWNER_ID)

    with pytest.raises(AlreadyMember):
        await controller.join(event.id, "alice")

    assert (await controller.get_attendance(event.id)).attendee_count == 2


@pytest.mark.asyncio
async def test_leave_lost_race_is_success():
    store = RivalLeavesFirstStore()
    controller = AdmissionController(store)
    event = await store.create_event(make_draft(capacity=5), OWNER_ID)
    await controller.join(event.id, "alice")

    event = await controller.leave(event.id, "alice")

    assert not event.has_member("alice")
    assert event.attendee_count == 1


@pytest.mark.asyncio
async def test_event_deleted_after_precheck():
    store = DeletedMidJoinStore()
    controller = AdmissionController(store)
    event = await store.create_event(make_draft(capacity=5), OWNER_ID)

    with pytest.raises(EventNotFound):
        await controller.join(event.id, "alice")


@pytest.mark.asyncio
async def test_read_timeout():
    store = InMemoryMembershipStore(latency=0.5)
    controller = AdmissionController(store, timeout=0.01)

    with pytest.raises(StoreUnavailable) as exc_info:
        await controller.get_attendance("any")

    assert exc_info.value.operation == "get_event"
    assert exc_info.value.outcome_unknown is False


@pytest.mark.asyncio
async def test_mutation_timeout_then_retry():
    store = SlowMutationStore()
    event = await store.create_event(make_draft(capacity=5), OWNER_ID)

    with pytest.raises(StoreUnavailable) as exc_info:
        await AdmissionController(store, timeout=0.05).join(event.id, "alice")

    assert exc_info.value.outcome_unknown is True
    # Cancelled before the write: nothing applied, a retry admits once
    patient = AdmissionController(store, timeout=5.0)
    joined = await patient.join(event.id, "alice")
    assert joined.attendee_count == 2
    with pytest.raises(AlreadyMember):
        await patient.join(event.id, "alice")
