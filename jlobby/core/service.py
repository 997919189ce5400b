"""
LobbyService — wires storage, collaborators and settings into the callables.

Usage
-----
    from jlobby import CallContext, LobbyService, LobbySettings
    from jlobby.adapters.storage.memory import InMemoryStorage

    service = LobbyService(
        storage=InMemoryStorage(),
        directory=my_directory,
        presence=my_presence,
        settings=LobbySettings(),
    )
    ctx = CallContext(uid="abc")
    await service.create_new_user(ctx, {"username": "testuser123"})
    await service.quick_match(ctx)
    await service.cancel_quick_match(ctx)

Each callable takes the decoded request payload as a mapping and returns the
response payload as a dict. Failures are raised as CallableError; the
transport turns `exc.to_dict()` into whatever status framing it uses.
"""

from __future__ import annotations

import asyncio
import dataclasses
from collections.abc import Awaitable, Callable, Mapping
from datetime import datetime
from typing import Any

from jlobby.config import LobbySettings
from jlobby.core.gate import AuthGate
from jlobby.core.identity import IdentityReservation
from jlobby.core.keyspace import Keyspace
from jlobby.core.matchmaking import QueueMembership
from jlobby.core.retry import SleepFn
from jlobby.domain.errors import InvalidArgument
from jlobby.domain.models import (
    CallContext,
    QueueEntry,
    UserIdentity,
    UsernameReservation,
    utcnow,
)
from jlobby.ports.identity import PresencePort, UserDirectoryPort
from jlobby.ports.storage import DocumentStoragePort

Handler = Callable[[CallContext, Mapping[str, Any] | None], Awaitable[dict[str, object]]]


@dataclasses.dataclass
class LobbyService:
    """
    Parameters
    ----------
    storage   : DocumentStoragePort backing every keyspace
    directory : user directory consulted by the auth gate
    presence  : presence side channel consulted by quick_match
    settings  : LobbySettings; defaults are used when omitted
    clock     : timestamp source for stored created_at values
    sleep     : awaitable sleep used between retries
    """

    storage: DocumentStoragePort
    directory: UserDirectoryPort
    presence: PresencePort
    settings: LobbySettings = dataclasses.field(default_factory=LobbySettings)
    clock: Callable[[], datetime] = utcnow
    sleep: SleepFn = asyncio.sleep

    identity: IdentityReservation = dataclasses.field(init=False, repr=False)
    membership: QueueMembership = dataclasses.field(init=False, repr=False)

    def __post_init__(self) -> None:
        s = self.settings
        gate = AuthGate(self.directory, enforce_app_check=s.enforce_app_check)
        self.identity = IdentityReservation(
            gate=gate,
            users=self._keyspace(s.users_keyspace, UserIdentity),
            usernames=self._keyspace(s.usernames_keyspace, UsernameReservation),
            username_policy=s.username_policy,
            identity_policy=s.identity_policy,
            sleep=self.sleep,
        )
        self.membership = QueueMembership(
            gate=gate,
            queue=self._keyspace(s.queue_keyspace, QueueEntry),
            presence=self.presence,
            leave_policy=s.leave_policy,
            sleep=self.sleep,
        )

    def _keyspace(self, name: str, model: type) -> Keyspace:
        return Keyspace(
            storage=self.storage,
            name=name,
            model=model,
            clock=self.clock,
            max_retries=self.settings.cas_max_retries,
        )

    # ------------------------------------------------------------------ #
    # Callables                                                            #
    # ------------------------------------------------------------------ #

    async def create_new_user(
        self, context: CallContext, data: Mapping[str, Any] | None = None
    ) -> dict[str, object]:
        """Reserve data["username"] for the caller and create their user record."""
        raw = (data or {}).get("username")
        result = await self.identity.reserve_identity(context, raw)
        return result.to_dict()

    async def quick_match(
        self, context: CallContext, data: Mapping[str, Any] | None = None
    ) -> dict[str, object]:
        """Put the caller in the matchmaking queue."""
        return (await self.membership.join_queue(context)).to_dict()

    async def cancel_quick_match(
        self, context: CallContext, data: Mapping[str, Any] | None = None
    ) -> dict[str, object]:
        """Take the caller out of the matchmaking queue. Always succeeds."""
        return (await self.membership.leave_queue(context)).to_dict()

    @property
    def handlers(self) -> dict[str, Handler]:
        return {
            "createNewUser": self.create_new_user,
            "quickMatch": self.quick_match,
            "cancelQuickMatch": self.cancel_quick_match,
        }

    async def call(
        self, name: str, context: CallContext, data: Mapping[str, Any] | None = None
    ) -> dict[str, object]:
        """Dispatch a callable by the name clients invoke it with."""
        handler = self.handlers.get(name)
        if handler is None:
            raise InvalidArgument(f"unknown callable {name!r}")
        return await handler(context, data)
