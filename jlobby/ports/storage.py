"""
DocumentStoragePort — the storage port in jlobby.

Any object satisfying this structural Protocol can act as the storage backend.
No base class or registration is required — Python's structural subtyping
(duck typing + Protocol) is sufficient.

The backend only has to offer per-key atomicity. Nothing in jlobby relies on
a transaction spanning two keys.

CAS write contract
------------------
write(key, content, if_match=None, *, overwrite=False)
  - overwrite=True       → unconditional put (plain set)
  - if_match is None     → create-if-absent; raises CASConflictError if the
                           key already exists
  - if_match is given    → conditional put
      succeeds → storage returns the new etag (opaque str)
      fails    → raises CASConflictError

read(key)
  - Returns (content_bytes, etag_string)
  - If the key does not exist, returns (b"", None)

delete(key, if_match=None)
  - Deleting an absent key is not an error
  - With if_match, raises CASConflictError when the current etag differs
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class DocumentStoragePort(Protocol):
    """
    Minimal interface required by jlobby core.

    Three async methods. The etag returned by read() must be passed back
    as if_match on the next write() or delete() to achieve compare-and-set
    semantics.

    Implementing adapters (built-in):
      - InMemoryStorage        — asyncio.Lock-based, for testing
      - LocalFileSystemStorage — fcntl.flock-based, one file per key
      - S3Storage              — S3 IfMatch / IfNoneMatch conditional writes
      - GCSStorage             — GCS if_generation_match
    """

    async def read(self, key: str) -> tuple[bytes, str | None]:
        """
        Read the document stored at key.

        Returns
        -------
        content : bytes
            Raw bytes. Empty bytes (b"") if the key does not exist.
        etag : str | None
            Opaque version token. None if the key does not exist.
        """
        ...

    async def write(
        self,
        key: str,
        content: bytes,
        if_match: str | None = None,
        *,
        overwrite: bool = False,
    ) -> str:
        """
        Atomically write the document stored at key.

        Returns
        -------
        str : new etag for the written document

        Raises
        ------
        CASConflictError   if the create-if-absent or if_match guard fails
        StorageError       for any other I/O failure
        """
        ...

    async def delete(self, key: str, if_match: str | None = None) -> None:
        """
        Remove the document stored at key. Absent keys are ignored.

        Raises
        ------
        CASConflictError   if if_match is given and does not match
        StorageError       for any other I/O failure
        """
        ...
