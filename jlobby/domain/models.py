"""
Domain models for jlobby — backed by Pydantic v2.

Pydantic handles:
  - JSON serialization / deserialization (via codec.py)
  - datetime parsing (ISO-8601 with timezone)
  - Enum values as their string form

Stored records are frozen (immutable). Nothing in the protocol ever updates a
stored record in place: records are created once and, at most, deleted.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    return datetime.now(UTC)


class QueueStatus(str, Enum):
    """The only state a queue entry can be in while it exists."""

    WAITING = "waiting"


# --------------------------------------------------------------------- #
# Stored records                                                          #
# --------------------------------------------------------------------- #


class UsernameReservation(BaseModel):
    """
    Claim on a username. Lives at usernames/{username}.

    uid        — identity that owns the name
    created_at — commit timestamp, shared with the paired UserIdentity
    """

    model_config = ConfigDict(frozen=True)

    uid: str
    created_at: datetime


class UserIdentity(BaseModel):
    """
    A registered user. Lives at users/{uid}.

    created_at    — copied from the UsernameReservation commit
    username      — the reserved, trimmed username
    email_address — verified email reported by the user directory
    """

    model_config = ConfigDict(frozen=True)

    created_at: datetime
    username: str
    email_address: str | None = None


class QueueEntry(BaseModel):
    """A caller waiting to be matched. Lives at quick_matchmaking_queue/{uid}."""

    model_config = ConfigDict(frozen=True)

    uid: str
    created_at: datetime = Field(default_factory=utcnow)
    status: QueueStatus = QueueStatus.WAITING


# --------------------------------------------------------------------- #
# Request / response values                                               #
# --------------------------------------------------------------------- #


class CallContext(BaseModel):
    """
    What the transport layer knows about a request once it has decoded it.

    uid       — authenticated caller, or None for anonymous requests
    app_check — whether a valid app attestation token accompanied the call
    """

    model_config = ConfigDict(frozen=True)

    uid: str | None = None
    app_check: bool = True


class UserRecord(BaseModel):
    """Account data reported by the user directory for a uid."""

    model_config = ConfigDict(frozen=True)

    uid: str
    email: str | None = None
    email_verified: bool = False


class CallResult(BaseModel):
    """Successful callable response. Unset optional fields are omitted on the wire."""

    model_config = ConfigDict(frozen=True)

    success: bool = True
    username: str | None = None
    uid: str | None = None

    def to_dict(self) -> dict[str, object]:
        return self.model_dump(exclude_none=True)
