"""
InMemoryUserDirectory — dict-backed UserDirectoryPort for tests and local runs.
"""

from __future__ import annotations

import dataclasses

from jlobby.domain.errors import UserNotFoundError
from jlobby.domain.models import UserRecord


@dataclasses.dataclass
class InMemoryUserDirectory:
    users: dict[str, UserRecord] = dataclasses.field(default_factory=dict)

    def add(
        self, uid: str, email: str | None = None, *, email_verified: bool = True
    ) -> UserRecord:
        """Register (or replace) an account and return it."""
        record = UserRecord(uid=uid, email=email, email_verified=email_verified)
        self.users[uid] = record
        return record

    async def get_user(self, uid: str) -> UserRecord:
        try:
            return self.users[uid]
        except KeyError:
            raise UserNotFoundError(uid) from None
