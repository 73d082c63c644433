"""Event RSVP API: capacity-safe admission of attendees to events."""

__version__ = "1.0.0"
