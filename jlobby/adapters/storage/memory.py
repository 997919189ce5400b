"""
InMemoryStorage — asyncio.Lock-based CAS for testing and development.

Stores every document as bytes in a dict keyed by document key. Uses an
asyncio.Lock to serialize reads, writes and deletes, faithfully simulating
the per-key CAS semantics of real object storage backends.

The etag is a monotonic integer counter (stringified) shared by all keys and
incremented on every successful write, so an etag is never reused even after
a key is deleted and created again.

Zero external dependencies. Safe for multiple concurrent coroutines in a
single event loop. NOT safe across processes or threads.
"""

from __future__ import annotations

import asyncio
import dataclasses

from jlobby.domain.errors import CASConflictError


@dataclasses.dataclass
class InMemoryStorage:
    """
    In-process document storage backed by a dict.

    Parameters
    ----------
    initial_documents : optional pre-populated {key: bytes} (useful for test setup)
    """

    initial_documents: dict[str, bytes] = dataclasses.field(default_factory=dict)

    def __post_init__(self) -> None:
        self._documents: dict[str, tuple[bytes, str]] = {
            key: (content, "0") for key, content in self.initial_documents.items()
        }
        self._counter: int = 0
        self._lock: asyncio.Lock = asyncio.Lock()

    def keys(self, prefix: str = "") -> list[str]:
        """Sorted keys currently stored, optionally filtered by prefix."""
        return sorted(k for k in self._documents if k.startswith(prefix))

    async def read(self, key: str) -> tuple[bytes, str | None]:
        """Return (content, etag). (b"", None) for an absent key."""
        async with self._lock:
            content, etag = self._documents.get(key, (b"", None))
            return content, etag

    async def write(
        self,
        key: str,
        content: bytes,
        if_match: str | None = None,
        *,
        overwrite: bool = False,
    ) -> str:
        """CAS write. Raises CASConflictError if the guard does not hold."""
        async with self._lock:
            current = self._documents.get(key)
            current_etag = current[1] if current is not None else None
            if not overwrite and if_match != current_etag:
                raise CASConflictError(
                    f"ETag mismatch on {key!r}: expected {if_match!r}, got {current_etag!r}"
                )
            self._counter += 1
            etag = str(self._counter)
            self._documents[key] = (content, etag)
            return etag

    async def delete(self, key: str, if_match: str | None = None) -> None:
        """Remove key. Raises CASConflictError if if_match differs from the current etag."""
        async with self._lock:
            current = self._documents.get(key)
            if current is None:
                return
            if if_match is not None and if_match != current[1]:
                raise CASConflictError(
                    f"ETag mismatch on {key!r}: expected {if_match!r}, got {current[1]!r}"
                )
            del self._documents[key]
