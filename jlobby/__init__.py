"""
jlobby — unique-username registration and a matchmaking queue on per-key CAS storage.

Two workflows run on a store that only guarantees atomicity per key:

  createNewUser     reserve usernames/{name}, then create users/{uid}; if the
                    second step cannot commit, the reservation is deleted again
  quickMatch        put quick_matchmaking_queue/{uid} for an online caller
  cancelQuickMatch  remove that entry, retrying contended deletes, and
                    report success regardless

Every write is a compare-and-set on a single document: read it, decide, and
write back with an If-Match (or must-not-exist) guard.

Quick start
-----------
    import asyncio
    from jlobby import CallContext, LobbyService, LobbySettings
    from jlobby.adapters.directory.memory import InMemoryUserDirectory
    from jlobby.adapters.presence.memory import InMemoryPresence
    from jlobby.adapters.storage.memory import InMemoryStorage

    async def main():
        directory = InMemoryUserDirectory()
        directory.add("uid-1", "player@example.com")
        presence = InMemoryPresence({"uid-1"})

        service = LobbyService(InMemoryStorage(), directory, presence, LobbySettings())
        ctx = CallContext(uid="uid-1")

        print(await service.create_new_user(ctx, {"username": "testuser123"}))
        print(await service.quick_match(ctx))
        print(await service.cancel_quick_match(ctx))

    asyncio.run(main())

Storage adapters
----------------
Built-in adapters (no extra deps):
  - InMemoryStorage           — for tests and examples
  - LocalFileSystemStorage    — POSIX single-machine (fcntl.flock)

Optional adapters (install extras):
  - S3Storage        (pip install "jlobby[s3]")
  - GCSStorage       (pip install "jlobby[gcs]")

Custom adapters only need to implement the three-method DocumentStoragePort:
  async def read(key) -> tuple[bytes, str | None]
  async def write(key, content, if_match=None, *, overwrite=False) -> str
  async def delete(key, if_match=None) -> None

Architecture
------------
Follows the Ports & Adapters pattern:
  domain/   — pure value types and the error hierarchy
  ports/    — Protocol interfaces (storage, user directory, presence)
  core/     — keyspaces, retry state machine, the two workflows, LobbyService
  adapters/ — concrete storage, directory and presence implementations
"""

from __future__ import annotations

from jlobby.adapters.storage.filesystem import LocalFileSystemStorage
from jlobby.adapters.storage.memory import InMemoryStorage
from jlobby.config import LobbySettings
from jlobby.core.identity import IdentityReservation
from jlobby.core.keyspace import Keyspace, TransactionResult
from jlobby.core.matchmaking import QueueMembership, RemovalOutcome
from jlobby.core.retry import Failure, RetryLoop, RetryPolicy, classify
from jlobby.core.service import LobbyService
from jlobby.domain.errors import (
    AlreadyExists,
    CallableError,
    CASConflictError,
    ErrorCode,
    Internal,
    InvalidArgument,
    JLobbyError,
    PreconditionFailed,
    StorageError,
    Unauthenticated,
    UserNotFoundError,
)
from jlobby.domain.models import (
    CallContext,
    CallResult,
    QueueEntry,
    QueueStatus,
    UserIdentity,
    UsernameReservation,
    UserRecord,
)
from jlobby.log import configure_logging
from jlobby.ports.identity import PresencePort, UserDirectoryPort
from jlobby.ports.storage import DocumentStoragePort

__all__ = [
    # Domain models
    "CallContext",
    "CallResult",
    "QueueEntry",
    "QueueStatus",
    "UserIdentity",
    "UsernameReservation",
    "UserRecord",
    # Errors
    "JLobbyError",
    "CASConflictError",
    "StorageError",
    "UserNotFoundError",
    "CallableError",
    "ErrorCode",
    "Unauthenticated",
    "PreconditionFailed",
    "InvalidArgument",
    "AlreadyExists",
    "Internal",
    # Ports (for typing custom adapters)
    "DocumentStoragePort",
    "UserDirectoryPort",
    "PresencePort",
    # Core
    "Keyspace",
    "TransactionResult",
    "RetryPolicy",
    "RetryLoop",
    "Failure",
    "classify",
    "IdentityReservation",
    "QueueMembership",
    "RemovalOutcome",
    "LobbyService",
    # Configuration & logging
    "LobbySettings",
    "configure_logging",
    # Built-in storage adapters
    "InMemoryStorage",
    "LocalFileSystemStorage",
]
