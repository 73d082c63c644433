"""
Pydantic schemas for event and RSVP request/response validation.
JSON bodies use camelCase; snake_case field names are accepted on input too.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from rsvp.services.interfaces.directory import AttendeeIdentity
from rsvp.services.interfaces.membership import EventDraft, EventSnapshot


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class EventCreate(CamelModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: str = Field(..., min_length=1, max_length=1000)
    date: datetime
    location: str = Field(..., min_length=1, max_length=255)
    capacity: int = Field(..., gt=0, le=100000)

    def to_draft(self) -> EventDraft:
        return EventDraft(
            title=self.title.strip(),
            description=self.description,
            date=self.date,
            location=self.location.strip(),
            capacity=self.capacity,
        )


class EventUpdate(CamelModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = Field(None, min_length=1, max_length=1000)
    date: Optional[datetime] = None
    location: Optional[str] = Field(None, min_length=1, max_length=255)


class CapacityUpdate(CamelModel):
    capacity: int = Field(..., gt=0, le=100000)


class AttendeeOut(CamelModel):
    id: str
    name: Optional[str] = None
    email: Optional[str] = None

    @classmethod
    def from_identity(cls, identity: AttendeeIdentity) -> "AttendeeOut":
        return cls(id=identity.id, name=identity.name, email=identity.email)


class EventResponse(CamelModel):
    id: str
    title: str
    description: str
    date: Optional[datetime]
    location: str
    capacity: int
    owner_id: str
    attendee_count: int
    available_spots: int
    attendees: list[AttendeeOut]

    @classmethod
    def from_snapshot(cls, event: EventSnapshot, attendees: list[AttendeeIdentity]) -> "EventResponse":
        return cls(
            id=event.id,
            title=event.title,
            description=event.description,
            date=event.date,
            location=event.location,
            capacity=event.capacity,
            owner_id=event.owner_id,
            attendee_count=event.attendee_count,
            available_spots=event.available_spots,
            attendees=[AttendeeOut.from_identity(a) for a in attendees],
        )


class EventListResponse(CamelModel):
    success: bool = True
    count: int
    events: list[EventResponse]


class EventEnvelope(CamelModel):
    success: bool = True
    message: Optional[str] = None
    event: EventResponse


class AttendanceResponse(CamelModel):
    success: bool = True
    attendee_count: int
    capacity: int
    available_spots: int
    attendees: list[AttendeeOut]


class MessageResponse(CamelModel):
    success: bool = True
    message: str


class ErrorResponse(CamelModel):
    success: bool = False
    error: str
    message: str
