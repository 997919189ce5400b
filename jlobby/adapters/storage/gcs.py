"""
GCSStorage — Google Cloud Storage adapter using google-cloud-storage.

Install extras: pip install "jlobby[gcs]"

CAS semantics
-------------
GCS supports conditional writes and deletes via object generation numbers.
Each document is one blob at gs://bucket/prefix/key.json.

  read()   → (content, generation_string)
  write()  → if_generation_match=0 for create-if-absent ("must not exist"),
             int(etag) for a replace, no precondition for overwrite;
             PreconditionFailed → CASConflictError
  delete() → blob.delete(if_generation_match=...); NotFound is ignored

Transient API failures (503, 429, 409 aborted) become StorageError with a
normalised `code`.

Note: google-cloud-storage is synchronous. All operations are wrapped in
asyncio.to_thread to avoid blocking the event loop.
"""

from __future__ import annotations

import asyncio
import dataclasses
from typing import TYPE_CHECKING, Any

from jlobby.domain.errors import CASConflictError, StorageError

if TYPE_CHECKING:
    from google.cloud.storage import Client as GCSClient

_STATUS_BY_HTTP: dict[int, str] = {
    403: "permission-denied",
    409: "aborted",
    429: "unavailable",
    500: "unavailable",
    502: "unavailable",
    503: "unavailable",
    504: "unavailable",
}


def _api_exceptions() -> Any:
    try:
        from google.api_core import exceptions as gapi_exc  # type: ignore[import-untyped]
    except ImportError as exc:
        raise ImportError(
            "GCSStorage requires google-cloud-storage. "
            "Install with: pip install 'jlobby[gcs]'"
        ) from exc
    return gapi_exc


@dataclasses.dataclass
class GCSStorage:
    """
    Google Cloud Storage adapter.

    Parameters
    ----------
    bucket_name : GCS bucket name
    prefix      : blob name prefix for every document (e.g. "lobby/")
    client      : google.cloud.storage.Client — created lazily if omitted
    """

    bucket_name: str
    prefix: str = ""
    client: GCSClient | None = None

    def _get_client(self) -> GCSClient:
        if self.client is not None:
            return self.client
        try:
            from google.cloud import storage  # type: ignore[import-untyped]
        except ImportError as exc:
            raise ImportError(
                "GCSStorage requires google-cloud-storage. "
                "Install with: pip install 'jlobby[gcs]'"
            ) from exc
        self.client = storage.Client()  # type: ignore[assignment]
        return self.client  # type: ignore[return-value]

    def _blob(self, key: str) -> Any:
        client = self._get_client()
        return client.bucket(self.bucket_name).blob(f"{self.prefix}{key}.json")  # type: ignore[attr-defined]

    async def read(self, key: str) -> tuple[bytes, str | None]:
        """Read a document. Returns (b"", None) if the blob does not exist."""
        try:
            return await asyncio.to_thread(self._sync_read, key)
        except (CASConflictError, StorageError):
            raise
        except Exception as exc:
            raise StorageError("GCS read failed", exc, code=_status(exc)) from exc

    async def write(
        self,
        key: str,
        content: bytes,
        if_match: str | None = None,
        *,
        overwrite: bool = False,
    ) -> str:
        """CAS write. Raises CASConflictError on generation mismatch."""
        try:
            return await asyncio.to_thread(
                self._sync_write, key, content, if_match, overwrite
            )
        except (CASConflictError, StorageError):
            raise
        except Exception as exc:
            raise StorageError("GCS write failed", exc, code=_status(exc)) from exc

    async def delete(self, key: str, if_match: str | None = None) -> None:
        """Delete a document. Missing blobs are not an error."""
        try:
            await asyncio.to_thread(self._sync_delete, key, if_match)
        except (CASConflictError, StorageError):
            raise
        except Exception as exc:
            raise StorageError("GCS delete failed", exc, code=_status(exc)) from exc

    # ------------------------------------------------------------------ #
    # Synchronous implementations (executed in a thread-pool worker)      #
    # ------------------------------------------------------------------ #

    def _sync_read(self, key: str) -> tuple[bytes, str | None]:
        gapi_exc = _api_exceptions()
        blob = self._blob(key)
        try:
            content: bytes = blob.download_as_bytes()
            return content, str(blob.generation)
        except gapi_exc.NotFound:
            return b"", None

    def _sync_write(
        self, key: str, content: bytes, if_match: str | None, overwrite: bool
    ) -> str:
        gapi_exc = _api_exceptions()
        blob = self._blob(key)

        kwargs: dict[str, int] = {}
        if not overwrite:
            # if_generation_match=0 → "blob must not exist yet"
            kwargs["if_generation_match"] = 0 if if_match is None else int(if_match)

        try:
            blob.upload_from_string(
                content,
                content_type="application/json",
                **kwargs,
            )
        except gapi_exc.PreconditionFailed as exc:
            raise CASConflictError(f"GCS generation mismatch for {key!r}") from exc

        blob.reload()
        return str(blob.generation)

    def _sync_delete(self, key: str, if_match: str | None) -> None:
        gapi_exc = _api_exceptions()
        blob = self._blob(key)

        kwargs: dict[str, int] = {}
        if if_match is not None:
            kwargs["if_generation_match"] = int(if_match)

        try:
            blob.delete(**kwargs)
        except gapi_exc.NotFound:
            return
        except gapi_exc.PreconditionFailed as exc:
            raise CASConflictError(f"GCS generation mismatch for {key!r}") from exc


def _status(exc: Exception) -> str | None:
    """Normalised status from a google.api_core GoogleAPICallError's HTTP code."""
    http_code = getattr(exc, "code", None)
    if isinstance(http_code, int):
        return _STATUS_BY_HTTP.get(http_code)
    return None
