"""
Identity directory interface.
Resolves principal ids to display data; which principals exist is decided by
the identity provider, not by this service.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Iterable, Optional


@dataclass(frozen=True)
class AttendeeIdentity:
    id: str
    name: Optional[str] = None
    email: Optional[str] = None


class IdentityDirectory(ABC):

    @abstractmethod
    async def resolve(self, principal_ids: Iterable[str]) -> list[AttendeeIdentity]:
        """
        Resolve ids in a stable order (sorted by id).
        Unknown ids resolve to an identity carrying only the id.
        """
        pass


class PassthroughDirectory(IdentityDirectory):
    """No display data available - identities carry ids only."""

    async def resolve(self, principal_ids: Iterable[str]) -> list[AttendeeIdentity]:
        return [AttendeeIdentity(id=pid) for pid in sorted(principal_ids)]
