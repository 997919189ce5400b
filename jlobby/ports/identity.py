"""
Ports for the collaborators jlobby consumes but never implements for real:
the user directory (who is this uid, is their email verified) and the presence
side channel (is this uid online right now).
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from jlobby.domain.models import UserRecord


@runtime_checkable
class UserDirectoryPort(Protocol):
    """Looks up account data for an authenticated uid."""

    async def get_user(self, uid: str) -> UserRecord:
        """
        Return the account for uid.

        Raises
        ------
        UserNotFoundError  if the directory has no such account
        """
        ...


@runtime_checkable
class PresencePort(Protocol):
    """Existence check against the presence side channel."""

    async def is_online(self, uid: str) -> bool: ...
