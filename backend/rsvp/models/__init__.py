from rsvp.models.user import User
from rsvp.models.event import Event
from rsvp.models.attendee import EventAttendee

__all__ = ["User", "Event", "EventAttendee"]
