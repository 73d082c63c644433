"""
RSVP endpoints: join, leave and attendance.
"""

from fastapi import APIRouter, Depends

from rsvp.api.deps import get_admission_controller, render_event
from rsvp.core.security import get_current_user_id
from rsvp.schemas.event import AttendanceResponse, AttendeeOut, EventEnvelope
from rsvp.services.admission_service import AdmissionController
from rsvp.services.interfaces.directory import IdentityDirectory
from rsvp.services.store_factory import get_identity_directory

router = APIRouter(prefix="/events", tags=["RSVP"])


@router.post("/{event_id}/join", response_model=EventEnvelope)
async def join_event(
    event_id: str,
    user_id: str = Depends(get_current_user_id),
    admission: AdmissionController = Depends(get_admission_controller),
    directory: IdentityDirectory = Depends(get_identity_directory),
):
    """
    RSVP to an event.

    Capacity is enforced by one atomic conditional update in the store, so
    concurrent requests for the last spot admit exactly one caller. Safe to
    retry after a 503: a repeated join answers 400 already_member.
    """
    event = await admission.join(event_id, user_id)
    return EventEnvelope(message="Successfully joined the event", event=await render_event(event, directory))


@router.post("/{event_id}/leave", response_model=EventEnvelope)
async def leave_event(
    event_id: str,
    user_id: str = Depends(get_current_user_id),
    admission: AdmissionController = Depends(get_admission_controller),
    directory: IdentityDirectory = Depends(get_identity_directory),
):
    """Cancel an RSVP. The event creator cannot leave."""
    event = await admission.leave(event_id, user_id)
    return EventEnvelope(message="Successfully left the event", event=await render_event(event, directory))


@router.get("/{event_id}/attendees", response_model=AttendanceResponse)
async def get_event_attendees(
    event_id: str,
    admission: AdmissionController = Depends(get_admission_controller),
    directory: IdentityDirectory = Depends(get_identity_directory),
):
    """Attendance summary. Public."""
    attendance = await admission.get_attendance(event_id)
    identities = await directory.resolve(attendance.attendees)
    return AttendanceResponse(
        attendee_count=attendance.attendee_count,
        capacity=attendance.capacity,
        available_spots=attendance.available_spots,
        attendees=[AttendeeOut.from_identity(i) for i in identities],
    )
