"""
Attendance rows: one per (event, principal).

The composite primary key is the uniqueness invariant; a concurrent duplicate
admission fails on it and rolls back the count increment with it.
"""

from sqlalchemy import Column, String, ForeignKey

from rsvp.db.base import Base, TimestampMixin


class EventAttendee(Base, TimestampMixin):
    __tablename__ = "event_attendees"

    event_id = Column(String(32), ForeignKey("events.id", ondelete="CASCADE"), primary_key=True)
    user_id = Column(String(64), primary_key=True, index=True)

    def __repr__(self) -> str:
        return f"<EventAttendee(event={self.event_id}, user={self.user_id})>"
