"""
LocalFileSystemStorage — fcntl.flock-based CAS for POSIX systems.

Suitable for local development, single-machine deployments, or integration
tests that need persistent files rather than in-memory state.

NOT suitable for multi-machine deployments — use S3Storage or GCSStorage
for distributed workloads.

Layout
------
Each document key maps to one JSON file below `root`:

    users/abc123  →  <root>/users/abc123.json

Keys must be relative and may not contain "." or ".." segments.

Etag strategy
-------------
The etag is a SHA-256 hex digest of the file contents. A file that is absent
or empty is treated as non-existent; its etag is None. The codec always
produces non-empty JSON, so a 0-byte file only occurs transiently while a
create is in progress (or after a delete raced with a create, see below).

CAS semantics
-------------
write() and delete() acquire an exclusive flock, re-read the current etag
while holding the lock, and raise CASConflictError if it does not match the
guard. The mutation happens within the same lock scope. delete() truncates
the file under the lock before unlinking it; a create that opened the old
inode just before the unlink lands on the orphaned inode and is lost, which
is tolerable for a single-machine development backend.

POSIX-only (Linux, macOS). Not compatible with NFS or distributed filesystems.
"""

from __future__ import annotations

import asyncio
import dataclasses
import fcntl
import hashlib
import os
from pathlib import Path, PurePosixPath

from jlobby.domain.errors import CASConflictError, StorageError


@dataclasses.dataclass
class LocalFileSystemStorage:
    """
    Stores one file per document key.

    Parameters
    ----------
    root : directory holding the keyspaces (created on first write)
    """

    root: Path

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    async def read(self, key: str) -> tuple[bytes, str | None]:
        """Return (content, etag). Returns (b"", None) if the document does not exist."""
        return await asyncio.to_thread(self._sync_read, self._path(key))

    async def write(
        self,
        key: str,
        content: bytes,
        if_match: str | None = None,
        *,
        overwrite: bool = False,
    ) -> str:
        """CAS write. Raises CASConflictError on etag mismatch."""
        return await asyncio.to_thread(
            self._sync_write, self._path(key), content, if_match, overwrite
        )

    async def delete(self, key: str, if_match: str | None = None) -> None:
        """Remove the document. Absent documents are ignored."""
        await asyncio.to_thread(self._sync_delete, self._path(key), if_match)

    # ------------------------------------------------------------------ #
    # Synchronous implementations (executed in a thread-pool worker)      #
    # ------------------------------------------------------------------ #

    def _path(self, key: str) -> Path:
        parts = PurePosixPath(key).parts
        if not parts or key.startswith("/") or any(p in (".", "..") for p in parts):
            raise StorageError(
                "Invalid document key", ValueError(f"{key!r} is not a relative key")
            )
        return self.root.joinpath(*parts).with_name(parts[-1] + ".json")

    @staticmethod
    def _etag(data: bytes) -> str:
        return hashlib.sha256(data).hexdigest()

    def _sync_read(self, path: Path) -> tuple[bytes, str | None]:
        try:
            fh = open(path, "rb")
        except FileNotFoundError:
            return b"", None
        with fh:
            fcntl.flock(fh, fcntl.LOCK_SH)
            try:
                content = fh.read()
            finally:
                fcntl.flock(fh, fcntl.LOCK_UN)
        etag: str | None = self._etag(content) if content else None
        return content, etag

    def _sync_write(
        self, path: Path, content: bytes, if_match: str | None, overwrite: bool
    ) -> str:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(str(path), os.O_RDWR | os.O_CREAT, 0o644)
        try:
            fcntl.flock(fd, fcntl.LOCK_EX)

            existing = os.read(fd, os.fstat(fd).st_size)
            real_etag: str | None = self._etag(existing) if existing else None

            if not overwrite and real_etag != if_match:
                raise CASConflictError(
                    f"ETag mismatch: expected {if_match!r}, got {real_etag!r}"
                )

            os.ftruncate(fd, 0)
            os.lseek(fd, 0, os.SEEK_SET)
            os.write(fd, content)
        finally:
            fcntl.flock(fd, fcntl.LOCK_UN)
            os.close(fd)

        return self._etag(content)

    def _sync_delete(self, path: Path, if_match: str | None) -> None:
        try:
            fd = os.open(str(path), os.O_RDWR)
        except FileNotFoundError:
            return
        try:
            fcntl.flock(fd, fcntl.LOCK_EX)

            existing = os.read(fd, os.fstat(fd).st_size)
            if not existing:
                return
            if if_match is not None and self._etag(existing) != if_match:
                raise CASConflictError(
                    f"ETag mismatch: expected {if_match!r}, got {self._etag(existing)!r}"
                )

            os.ftruncate(fd, 0)
            path.unlink(missing_ok=True)
        finally:
            fcntl.flock(fd, fcntl.LOCK_UN)
            os.close(fd)
