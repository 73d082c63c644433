"""
Event endpoints: creation, listing, owner-only edits and deletion.
"""

from fastapi import APIRouter, Depends, status

from rsvp.api.deps import get_admission_controller, get_event_service, render_event, render_events
from rsvp.core.security import get_current_user_id
from rsvp.schemas.event import (
    CapacityUpdate,
    EventCreate,
    EventEnvelope,
    EventListResponse,
    EventUpdate,
    MessageResponse,
)
from rsvp.services.admission_service import AdmissionController
from rsvp.services.event_service import EventService
from rsvp.services.interfaces.directory import IdentityDirectory
from rsvp.services.store_factory import get_identity_directory

router = APIRouter(prefix="/events", tags=["Events"])


@router.post("/", response_model=EventEnvelope, status_code=status.HTTP_201_CREATED)
async def create_event_endpoint(
    event_data: EventCreate,
    user_id: str = Depends(get_current_user_id),
    events: EventService = Depends(get_event_service),
    directory: IdentityDirectory = Depends(get_identity_directory),
):
    """Create a new event. The creator is automatically an attendee."""
    event = await events.create_event(event_data.to_draft(), user_id)
    return EventEnvelope(message="Event created successfully", event=await render_event(event, directory))


@router.get("/", response_model=EventListResponse)
async def list_events_endpoint(
    events: EventService = Depends(get_event_service),
    directory: IdentityDirectory = Depends(get_identity_directory),
):
    """List all events, soonest first."""
    snapshots = await events.list_events()
    return EventListResponse(count=len(snapshots), events=await render_events(snapshots, directory))


@router.get("/{event_id}", response_model=EventEnvelope)
async def get_event_endpoint(
    event_id: str,
    events: EventService = Depends(get_event_service),
    directory: IdentityDirectory = Depends(get_identity_directory),
):
    """Get a single event with live attendance."""
    event = await events.get_event(event_id)
    return EventEnvelope(event=await render_event(event, directory))


@router.put("/{event_id}", response_model=EventEnvelope)
async def update_event_endpoint(
    event_id: str,
    event_data: EventUpdate,
    user_id: str = Depends(get_current_user_id),
    events: EventService = Depends(get_event_service),
    directory: IdentityDirectory = Depends(get_identity_directory),
):
    """Edit title, description, date or location. Owner only."""
    event = await events.update_details(event_id, user_id, event_data.model_dump(exclude_unset=True))
    return EventEnvelope(message="Event updated successfully", event=await render_event(event, directory))


@router.patch("/{event_id}/capacity", response_model=EventEnvelope)
async def update_capacity_endpoint(
    event_id: str,
    capacity_data: CapacityUpdate,
    user_id: str = Depends(get_current_user_id),
    admission: AdmissionController = Depends(get_admission_controller),
    directory: IdentityDirectory = Depends(get_identity_directory),
):
    """
    Change capacity. Owner only.
    Rejected when the new capacity is below the current attendee count.
    """
    event = await admission.update_capacity(event_id, capacity_data.capacity, user_id)
    return EventEnvelope(message="Capacity updated successfully", event=await render_event(event, directory))


@router.delete("/{event_id}", response_model=MessageResponse)
async def delete_event_endpoint(
    event_id: str,
    user_id: str = Depends(get_current_user_id),
    events: EventService = Depends(get_event_service),
):
    """Delete an event and its attendance. Owner only."""
    await events.delete_event(event_id, user_id)
    return MessageResponse(message="Event deleted successfully")
