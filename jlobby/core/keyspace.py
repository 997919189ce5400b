"""
Keyspace — one logical collection of documents on a DocumentStoragePort.

A Keyspace binds a key prefix ("users", "usernames", ...) to the model stored
under it and offers the primitives the protocol is written against:

  get / exists   point read
  set            unconditional put
  transaction    single-key optimistic transaction (read → fn → CAS write)
  delete         point delete, optionally guarded by an etag

Transaction semantics
---------------------
transaction(doc_id, fn) mirrors a realtime-database style transaction:

  1. read current value + etag
  2. call fn(current, now) — returns the new record, or None to abort
  3. CAS write back (create-if-absent when current is None, if_match otherwise)
  4. on CASConflictError re-read and re-run fn (linear back-off 10ms × attempt)

An abort is not an error: the result reports committed=False together with
the value that caused it. `now` is taken from the keyspace clock once per
attempt and stands in for the server timestamp.
"""

from __future__ import annotations

import asyncio
import dataclasses
from collections.abc import Callable
from datetime import datetime
from typing import Generic, TypeVar

from pydantic import BaseModel

from jlobby.core import codec
from jlobby.domain.errors import CASConflictError
from jlobby.domain.models import utcnow
from jlobby.ports.storage import DocumentStoragePort

M = TypeVar("M", bound=BaseModel)

TransactionFn = Callable[[M | None, datetime], M | None]


@dataclasses.dataclass(frozen=True)
class TransactionResult(Generic[M]):
    """
    Outcome of Keyspace.transaction.

    committed — True if fn's record was written
    snapshot  — the committed record, or the current value when aborted
    etag      — etag of snapshot (None when the key is absent)
    """

    committed: bool
    snapshot: M | None
    etag: str | None


@dataclasses.dataclass
class Keyspace(Generic[M]):
    """
    Parameters
    ----------
    storage     : any DocumentStoragePort implementation
    name        : key prefix; documents live at "{name}/{doc_id}"
    model       : pydantic model stored in this keyspace
    clock       : timestamp source used for `now` in transactions
    max_retries : CAS attempts per transaction before CASConflictError escapes
    """

    storage: DocumentStoragePort
    name: str
    model: type[M]
    clock: Callable[[], datetime] = utcnow
    max_retries: int = 10

    def key(self, doc_id: str) -> str:
        return f"{self.name}/{doc_id}"

    async def get(self, doc_id: str) -> M | None:
        content, _ = await self.storage.read(self.key(doc_id))
        return codec.decode(content, self.model)

    async def exists(self, doc_id: str) -> bool:
        _, etag = await self.storage.read(self.key(doc_id))
        return etag is not None

    async def set(self, doc_id: str, record: M) -> str:
        """Unconditional put. Returns the new etag."""
        return await self.storage.write(
            self.key(doc_id), codec.encode(record), overwrite=True
        )

    async def delete(self, doc_id: str, if_match: str | None = None) -> None:
        await self.storage.delete(self.key(doc_id), if_match=if_match)

    async def transaction(
        self, doc_id: str, fn: TransactionFn[M]
    ) -> TransactionResult[M]:
        """
        Single-key read-modify-write with CAS retry loop.

        fn(current, now) -> new record, or None to abort  (synchronous)
        Retries up to self.max_retries on CASConflictError.
        """
        key = self.key(doc_id)
        for attempt in range(self.max_retries):
            content, etag = await self.storage.read(key)
            current = codec.decode(content, self.model)
            updated = fn(current, self.clock())
            if updated is None:
                return TransactionResult(committed=False, snapshot=current, etag=etag)
            try:
                new_etag = await self.storage.write(
                    key, codec.encode(updated), if_match=etag
                )
            except CASConflictError:
                if attempt == self.max_retries - 1:
                    raise
                await asyncio.sleep(0.01 * (attempt + 1))
                continue
            return TransactionResult(committed=True, snapshot=updated, etag=new_etag)
        raise CASConflictError(f"transaction on {key!r} made no attempts")
