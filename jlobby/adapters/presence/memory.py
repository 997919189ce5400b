"""
InMemoryPresence — a set of online uids, for tests and local runs.
"""

from __future__ import annotations

import dataclasses


@dataclasses.dataclass
class InMemoryPresence:
    online: set[str] = dataclasses.field(default_factory=set)

    def mark_online(self, uid: str) -> None:
        self.online.add(uid)

    def mark_offline(self, uid: str) -> None:
        self.online.discard(uid)

    async def is_online(self, uid: str) -> bool:
        return uid in self.online
