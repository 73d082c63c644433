"""
Membership store contract tests, run against every backend.
"""

import pytest

from rsvp.core.errors import EventNotFound, InvalidCapacityEdit, NotEventOwner
from rsvp.services.interfaces.memory_store import InMemoryMembershipStore
from tests.conftest import OWNER_ID, future_date, make_draft


@pytest.mark.asyncio
async def test_create_event_admits_owner(store):
    event = await store.create_event(make_draft(capacity=5), OWNER_ID)

    assert event.id
    assert event.owner_id == OWNER_ID
    assert event.capacity == 5
    assert event.attendees == frozenset({OWNER_ID})
    assert event.attendee_count == 1
    assert event.available_spots == 4
    assert event.title == "Test Concert"


@pytest.mark.asyncio
async def test_get_event_returns_same_snapshot(store, test_event):
    event = await store.get_event(test_event.id)

    assert event.id == test_event.id
    assert event.attendees == test_event.attendees
    assert event.capacity == test_event.capacity


@pytest.mark.asyncio
async def test_get_unknown_event_returns_none(store):
    assert await store.get_event("does-not-exist") is None


@pytest.mark.asyncio
async def test_list_events_sorted_by_date(store):
    later = await store.create_event(make_draft(title="Later", days=60), OWNER_ID)
    sooner = await store.create_event(make_draft(title="Sooner", days=5), OWNER_ID)

    events = await store.list_events()

    assert [e.id for e in events] == [sooner.id, later.id]


@pytest.mark.asyncio
async def test_list_events_empty(store):
    assert await store.list_events() == []


@pytest.mark.asyncio
async def test_add_member_applies(store, test_event):
    result = await store.try_add_member(test_event.id, "alice")

    assert result.applied is True
    assert result.event.has_member("alice")
    assert result.event.attendee_count == 2


@pytest.mark.asyncio
async def test_add_member_is_idempotent(store, test_event):
    await store.try_add_member(test_event.id, "alice")
    result = await store.try_add_member(test_event.id, "alice")

    assert result.applied is False
    assert result.event.has_member("alice")
    assert result.event.attendee_count == 2


@pytest.mark.asyncio
async def test_add_member_rejected_when_full(store, small_event):
    first = await store.try_add_member(small_event.id, "alice")
    second = await store.try_add_member(small_event.id, "bob")

    assert first.applied is True
    assert second.applied is False
    assert not second.event.has_member("bob")
    assert second.event.attendee_count == 2
    assert second.event.is_full


@pytest.mark.asyncio
async def test_add_member_to_unknown_event(store):
    result = await store.try_add_member("does-not-exist", "alice")

    assert result.applied is False
    assert result.event is None


@pytest.mark.asyncio
async def test_remove_member_applies(store, test_event):
    await store.try_add_member(test_event.id, "alice")
    result = await store.try_remove_member(test_event.id, "alice")

    assert result.applied is True
    assert not result.event.has_member("alice")
    assert result.event.attendee_count == 1


@pytest.mark.asyncio
async def test_remove_member_is_idempotent(store, test_event):
    await store.try_add_member(test_event.id, "alice")
    await store.try_remove_member(test_event.id, "alice")
    result = await store.try_remove_member(test_event.id, "alice")

    assert result.applied is False
    assert result.event.attendee_count == 1


@pytest.mark.asyncio
async def test_remove_member_frees_spot(store, small_event):
    await store.try_add_member(small_event.id, "alice")
    await store.try_remove_member(small_event.id, "alice")
    result = await store.try_add_member(small_event.id, "bob")

    assert result.applied is True
    assert result.event.attendees == frozenset({OWNER_ID, "bob"})


@pytest.mark.asyncio
async def test_remove_member_from_unknown_event(store):
    result = await store.try_remove_member("does-not-exist", "alice")

    assert result.applied is False
    assert result.event is None


@pytest.mark.asyncio
async def test_raise_capacity(store, small_event):
    event = await store.update_capacity(small_event.id, 10, OWNER_ID)

    assert event.capacity == 10
    assert event.available_spots == 9


@pytest.mark.asyncio
async def test_lower_capacity_to_attendee_count(store, test_event):
    await store.try_add_member(test_event.id, "alice")
    event = await store.update_capacity(test_event.id, 2, OWNER_ID)

    assert event.capacity == 2
    assert event.is_full


@pytest.mark.asyncio
async def test_lower_capacity_below_attendee_count(store, test_event):
    await store.try_add_member(test_event.id, "alice")
    await store.try_add_member(test_event.id, "bob")

    with pytest.raises(InvalidCapacityEdit) as exc_info:
        await store.update_capacity(test_event.id, 2, OWNER_ID)

    assert exc_info.value.reason == InvalidCapacityEdit.BELOW_ATTENDANCE
    assert exc_info.value.attendee_count == 3
    assert (await store.get_event(test_event.id)).capacity == 100


@pytest.mark.asyncio
async def test_capacity_edit_by_non_owner(store, test_event):
    with pytest.raises(InvalidCapacityEdit) as exc_info:
        await store.update_capacity(test_event.id, 50, "intruder")

    assert exc_info.value.reason == InvalidCapacityEdit.NOT_OWNER
    assert exc_info.value.status_code == 403


@pytest.mark.asyncio
async def test_capacity_edit_unknown_event(store):
    with pytest.raises(EventNotFound):
        await store.update_capacity("does-not-exist", 5, OWNER_ID)


@pytest.mark.asyncio
async def test_update_title_keeps_membership(store, test_event):
    await store.try_add_member(test_event.id, "alice")
    event = await store.update_details(test_event.id, OWNER_ID, {"title": "Renamed"})

    assert event.title == "Renamed"
    assert event.location == "Test Venue"
    assert event.attendees == frozenset({OWNER_ID, "alice"})


@pytest.mark.asyncio
async def test_update_date_reorders_listing(store):
    first = await store.create_event(make_draft(title="First", days=5), OWNER_ID)
    second = await store.create_event(make_draft(title="Second", days=10), OWNER_ID)

    await store.update_details(first.id, OWNER_ID, {"date": future_date(20)})
    events = await store.list_events()

    assert [e.id for e in events] == [second.id, first.id]


@pytest.mark.asyncio
async def test_update_details_unknown_field(store, test_event):
    with pytest.raises(ValueError):
        await store.update_details(test_event.id, OWNER_ID, {"capacity": 1})


@pytest.mark.asyncio
async def test_update_details_by_non_owner(store, test_event):
    with pytest.raises(NotEventOwner):
        await store.update_details(test_event.id, "intruder", {"title": "Mine now"})

    assert (await store.get_event(test_event.id)).title == "Test Concert"


@pytest.mark.asyncio
async def test_update_details_unknown_event(store):
    with pytest.raises(EventNotFound):
        await store.update_details("does-not-exist", OWNER_ID, {"title": "x"})


@pytest.mark.asyncio
async def test_delete_removes_event_and_members(store, test_event):
    await store.try_add_member(test_event.id, "alice")
    await store.delete_event(test_event.id, OWNER_ID)

    assert await store.get_event(test_event.id) is None
    assert await store.list_events() == []


@pytest.mark.asyncio
async def test_add_member_after_delete(store, test_event):
    await store.delete_event(test_event.id, OWNER_ID)
    result = await store.try_add_member(test_event.id, "alice")

    assert result.applied is False
    assert result.event is None


@pytest.mark.asyncio
async def test_delete_by_non_owner(store, test_event):
    with pytest.raises(NotEventOwner):
        await store.delete_event(test_event.id, "intruder")

    assert await store.get_event(test_event.id) is not None


@pytest.mark.asyncio
async def test_delete_twice(store, test_event):
    await store.delete_event(test_event.id, OWNER_ID)

    with pytest.raises(EventNotFound):
        await store.delete_event(test_event.id, OWNER_ID)


@pytest.mark.asyncio
async def test_health_reports_backend(store):
    health = await store.health()

    assert health["status"] == "ok"
    assert health["backend"] == store.backend


@pytest.mark.asyncio
async def test_memory_store_keeps_no_locks_for_unknown_events():
    """Mutations on missing or deleted events leave no per-event lock behind."""
    store = InMemoryMembershipStore()
    event = await store.create_event(make_draft(capacity=5), OWNER_ID)

    for i in range(100):
        await store.try_add_member(f"missing-{i}", "alice")
        await store.try_remove_member(f"missing-{i}", "alice")
    with pytest.raises(EventNotFound):
        await store.update_capacity("missing-0", 5, OWNER_ID)

    assert set(store._locks) == {event.id}

    await store.delete_event(event.id, OWNER_ID)
    result = await store.try_add_member(event.id, "alice")

    assert result.event is None
    assert store._locks == {}
