"""
Error taxonomy for admission decisions.

Every business outcome other than success is an RsvpError subclass carrying
a stable `kind` (used in response bodies and metrics) and the HTTP status the
API layer should answer with. Only StoreUnavailable is eligible for a
caller-side retry.
"""

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    ALREADY_MEMBER = "already_member"
    NOT_MEMBER = "not_member"
    OWNER_CANNOT_LEAVE = "owner_cannot_leave"
    CAPACITY_EXCEEDED = "capacity_exceeded"
    INVALID_CAPACITY_EDIT = "invalid_capacity_edit"
    NOT_EVENT_OWNER = "not_event_owner"
    INVALID_EVENT_DETAILS = "invalid_event_details"
    STORE_UNAVAILABLE = "store_unavailable"


class RsvpError(Exception):
    kind: ErrorKind
    status_code: int = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class EventNotFound(RsvpError):
    kind = ErrorKind.NOT_FOUND
    status_code = 404

    def __init__(self, event_id: str):
        super().__init__("Event not found")
        self.event_id = event_id


class AlreadyMember(RsvpError):
    kind = ErrorKind.ALREADY_MEMBER

    def __init__(self, event_id: str, principal_id: str):
        super().__init__("You have already RSVPed to this event")
        self.event_id = event_id
        self.principal_id = principal_id


class NotMember(RsvpError):
    kind = ErrorKind.NOT_MEMBER

    def __init__(self, event_id: str, principal_id: str):
        super().__init__("You have not RSVPed to this event")
        self.event_id = event_id
        self.principal_id = principal_id


class OwnerCannotLeave(RsvpError):
    kind = ErrorKind.OWNER_CANNOT_LEAVE

    def __init__(self, event_id: str):
        super().__init__("Event creator cannot leave their own event")
        self.event_id = event_id


class CapacityExceeded(RsvpError):
    kind = ErrorKind.CAPACITY_EXCEEDED

    def __init__(self, event_id: str, capacity: int):
        super().__init__("This event is at full capacity")
        self.event_id = event_id
        self.capacity = capacity


class InvalidCapacityEdit(RsvpError):
    """Capacity edit rejected.

    reason is one of ``below_attendance``, ``not_positive`` or ``not_owner``;
    an edit by anyone but the owner answers 403, the rest 400.
    """

    kind = ErrorKind.INVALID_CAPACITY_EDIT

    BELOW_ATTENDANCE = "below_attendance"
    NOT_POSITIVE = "not_positive"
    NOT_OWNER = "not_owner"

    def __init__(self, event_id: str, reason: str, attendee_count: Optional[int] = None):
        if reason == self.BELOW_ATTENDANCE:
            message = f"Capacity cannot be less than current attendee count ({attendee_count})"
        elif reason == self.NOT_OWNER:
            message = "Not authorized to update this event"
        else:
            message = "Capacity must be at least 1"
        super().__init__(message)
        self.event_id = event_id
        self.reason = reason
        self.attendee_count = attendee_count
        self.status_code = 403 if reason == self.NOT_OWNER else 400


class NotEventOwner(RsvpError):
    kind = ErrorKind.NOT_EVENT_OWNER
    status_code = 403

    def __init__(self, event_id: str, action: str = "modify"):
        super().__init__(f"Not authorized to {action} this event")
        self.event_id = event_id


class InvalidEventDetails(RsvpError):
    kind = ErrorKind.INVALID_EVENT_DETAILS


class StoreUnavailable(RsvpError):
    """Transient failure talking to the membership store.

    When ``outcome_unknown`` is set the mutation may or may not have been
    applied; re-issuing the same join/leave is safe because both are
    idempotent under the controller's authoritative re-check.
    """

    kind = ErrorKind.STORE_UNAVAILABLE
    status_code = 503

    def __init__(self, operation: str, outcome_unknown: bool = False):
        super().__init__("Membership store is temporarily unavailable, please retry")
        self.operation = operation
        self.outcome_unknown = outcome_unknown
