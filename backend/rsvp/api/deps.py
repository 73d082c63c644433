"""
FastAPI dependencies wiring services to the configured store.
"""

from fastapi import Depends

from rsvp.core.config import get_settings
from rsvp.services.admission_service import AdmissionController
from rsvp.services.event_service import EventService
from rsvp.services.interfaces.directory import AttendeeIdentity, IdentityDirectory
from rsvp.services.interfaces.membership import EventSnapshot, MembershipStore
from rsvp.services.store_factory import get_membership_store
from rsvp.schemas.event import EventResponse


def get_admission_controller(
    store: MembershipStore = Depends(get_membership_store),
) -> AdmissionController:
    return AdmissionController(store, timeout=get_settings().STORE_TIMEOUT_SECONDS)


def get_event_service(
    store: MembershipStore = Depends(get_membership_store),
) -> EventService:
    return EventService(store)


async def render_events(events: list[EventSnapshot], directory: IdentityDirectory) -> list[EventResponse]:
    """Serialize snapshots with attendee identities resolved in one lookup."""
    all_ids = set()
    for event in events:
        all_ids.update(event.attendees)
    identities: dict[str, AttendeeIdentity] = {
        identity.id: identity for identity in await directory.resolve(all_ids)
    }
    return [
        EventResponse.from_snapshot(event, [identities[pid] for pid in sorted(event.attendees)])
        for event in events
    ]


async def render_event(event: EventSnapshot, directory: IdentityDirectory) -> EventResponse:
    return (await render_events([event], directory))[0]
