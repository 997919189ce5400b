"""
StoragePresence — presence markers kept as documents on a DocumentStoragePort.

A caller is online while a document exists at "{keyspace}/{uid}". Whatever
maintains presence (a connection handler, a heartbeat writer) creates and
removes those documents; jlobby only checks for their existence. The marker's
content is never decoded.
"""

from __future__ import annotations

import dataclasses

from jlobby.ports.storage import DocumentStoragePort


@dataclasses.dataclass
class StoragePresence:
    storage: DocumentStoragePort
    keyspace: str = "presence"

    async def is_online(self, uid: str) -> bool:
        _, etag = await self.storage.read(f"{self.keyspace}/{uid}")
        return etag is not None
