"""
Service interfaces for dependency inversion.
Allows swapping implementations without changing business logic.
"""

from .membership import EventDraft, EventSnapshot, MembershipStore, MutationResult
from .memory_store import InMemoryMembershipStore
from .directory import AttendeeIdentity, IdentityDirectory, PassthroughDirectory

__all__ = [
    'EventDraft', 'EventSnapshot', 'MembershipStore', 'MutationResult',
    'InMemoryMembershipStore',
    'AttendeeIdentity', 'IdentityDirectory', 'PassthroughDirectory',
]
