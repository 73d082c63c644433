"""
Event model with capacity-bounded attendance.

Key design decisions:
- `attendee_count` is denormalized so admission can be decided by a single
  conditional UPDATE on the event row (the row lock serializes joiners)
- CHECK constraints make the capacity invariant hold at the DB level too
- Index on `date` for the chronological listing
"""

from sqlalchemy import Column, Integer, String, DateTime, Index, CheckConstraint

from rsvp.db.base import Base, TimestampMixin


class Event(Base, TimestampMixin):
    __tablename__ = "events"

    id = Column(String(32), primary_key=True)
    title = Column(String(255), nullable=False)
    description = Column(String(1000), nullable=False, default="")
    date = Column(DateTime(timezone=True), nullable=False)
    location = Column(String(255), nullable=False, default="")
    capacity = Column(Integer, nullable=False)
    attendee_count = Column(Integer, nullable=False, default=0)
    owner_id = Column(String(64), nullable=False, index=True)

    __table_args__ = (
        CheckConstraint("capacity > 0", name="check_capacity_positive"),
        CheckConstraint("attendee_count >= 0", name="check_attendee_count_non_negative"),
        CheckConstraint("attendee_count <= capacity", name="check_attendee_count_lte_capacity"),
        Index("ix_events_date", "date"),
    )

    def __repr__(self) -> str:
        return f"<Event(id={self.id}, title={self.title}, attendees={self.attendee_count}/{self.capacity})>"
