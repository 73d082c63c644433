from rsvp.schemas.event import (
    AttendanceResponse,
    AttendeeOut,
    CapacityUpdate,
    ErrorResponse,
    EventCreate,
    EventEnvelope,
    EventListResponse,
    EventResponse,
    EventUpdate,
    MessageResponse,
)

__all__ = [
    "EventCreate", "EventUpdate", "CapacityUpdate",
    "AttendeeOut", "EventResponse", "EventListResponse", "EventEnvelope",
    "AttendanceResponse", "MessageResponse", "ErrorResponse",
]
