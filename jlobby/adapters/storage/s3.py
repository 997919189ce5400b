"""
S3Storage — AWS S3 adapter using aioboto3 and conditional requests.

Install extras: pip install "jlobby[s3]"

CAS semantics
-------------
S3 supports conditional PutObject via IfMatch / IfNoneMatch and conditional
DeleteObject via IfMatch.

  read()   → returns (content, ETag) for s3://bucket/prefix/key.json
  write()  → create-if-absent uses IfNoneMatch="*"; replace uses IfMatch=etag;
             overwrite sends neither. PreconditionFailed or
             ConditionalRequestConflict → CASConflictError
  delete() → DeleteObject, with IfMatch when an etag is given

Other client errors become StorageError with a normalised `code`, so the
retry classifier can tell throttling apart from, say, access denied.

Compatible with S3-compatible storage that supports conditional writes:
  MinIO, Cloudflare R2, Tigris, etc.
"""

from __future__ import annotations

import dataclasses
from typing import TYPE_CHECKING

from jlobby.domain.errors import CASConflictError, StorageError

if TYPE_CHECKING:
    from aioboto3 import Session as AioBoto3Session

_NOT_FOUND = ("NoSuchKey", "404")
_CAS_CONFLICT = ("PreconditionFailed", "ConditionalRequestConflict", "412", "409")
_STATUS_CODES: dict[str, str] = {
    "SlowDown": "unavailable",
    "ServiceUnavailable": "unavailable",
    "RequestTimeout": "unavailable",
    "InternalError": "unavailable",
    "503": "unavailable",
    "500": "unavailable",
    "OperationAborted": "aborted",
    "AccessDenied": "permission-denied",
    "403": "permission-denied",
}


@dataclasses.dataclass
class S3Storage:
    """
    AWS S3 storage adapter.

    Parameters
    ----------
    bucket       : S3 bucket name
    prefix       : key prefix for every document (e.g. "lobby/")
    session      : aioboto3.Session — created lazily from env vars if omitted
    region_name  : AWS region passed to the S3 client
    endpoint_url : custom endpoint for S3-compatible backends (e.g. MinIO)
    """

    bucket: str
    prefix: str = ""
    session: AioBoto3Session | None = None
    region_name: str | None = None
    endpoint_url: str | None = None

    def _get_session(self) -> AioBoto3Session:
        if self.session is not None:
            return self.session
        try:
            import aioboto3  # type: ignore[import-untyped]
        except ImportError as exc:
            raise ImportError(
                "S3Storage requires aioboto3. Install with: pip install 'jlobby[s3]'"
            ) from exc
        return aioboto3.Session()  # type: ignore[return-value]

    def _client_kwargs(self) -> dict[str, str]:
        """Build kwargs forwarded to the S3 client constructor."""
        kwargs: dict[str, str] = {}
        if self.region_name:
            kwargs["region_name"] = self.region_name
        if self.endpoint_url:
            kwargs["endpoint_url"] = self.endpoint_url
        return kwargs

    def _object_key(self, key: str) -> str:
        return f"{self.prefix}{key}.json"

    async def read(self, key: str) -> tuple[bytes, str | None]:
        """Read a document. Returns (b"", None) if the object does not exist."""
        session = self._get_session()
        try:
            async with session.client("s3", **self._client_kwargs()) as s3:  # type: ignore[attr-defined]
                try:
                    response = await s3.get_object(
                        Bucket=self.bucket, Key=self._object_key(key)
                    )
                    content: bytes = await response["Body"].read()
                    etag: str = response["ETag"]
                    return content, etag
                except Exception as exc:
                    if _s3_error_code(exc) in _NOT_FOUND:
                        return b"", None
                    raise
        except (CASConflictError, StorageError):
            raise
        except Exception as exc:
            raise StorageError("S3 read failed", exc, code=_status(exc)) from exc

    async def write(
        self,
        key: str,
        content: bytes,
        if_match: str | None = None,
        *,
        overwrite: bool = False,
    ) -> str:
        """CAS write. Raises CASConflictError when the condition is not met."""
        session = self._get_session()
        try:
            async with session.client("s3", **self._client_kwargs()) as s3:  # type: ignore[attr-defined]
                put_kwargs: dict[str, str | bytes] = {
                    "Bucket": self.bucket,
                    "Key": self._object_key(key),
                    "Body": content,
                    "ContentType": "application/json",
                }
                if not overwrite:
                    if if_match is None:
                        put_kwargs["IfNoneMatch"] = "*"
                    else:
                        put_kwargs["IfMatch"] = if_match

                try:
                    response = await s3.put_object(**put_kwargs)
                    return str(response["ETag"])
                except Exception as exc:
                    if _s3_error_code(exc) in _CAS_CONFLICT:
                        raise CASConflictError(
                            f"S3 conditional put rejected for {key!r}"
                        ) from exc
                    raise
        except (CASConflictError, StorageError):
            raise
        except Exception as exc:
            raise StorageError("S3 write failed", exc, code=_status(exc)) from exc

    async def delete(self, key: str, if_match: str | None = None) -> None:
        """Delete a document. Missing objects are not an error."""
        session = self._get_session()
        try:
            async with session.client("s3", **self._client_kwargs()) as s3:  # type: ignore[attr-defined]
                delete_kwargs: dict[str, str] = {
                    "Bucket": self.bucket,
                    "Key": self._object_key(key),
                }
                if if_match is not None:
                    delete_kwargs["IfMatch"] = if_match
                try:
                    await s3.delete_object(**delete_kwargs)
                except Exception as exc:
                    code = _s3_error_code(exc)
                    if code in _NOT_FOUND:
                        return
                    if code in _CAS_CONFLICT:
                        raise CASConflictError(
                            f"S3 conditional delete rejected for {key!r}"
                        ) from exc
                    raise
        except (CASConflictError, StorageError):
            raise
        except Exception as exc:
            raise StorageError("S3 delete failed", exc, code=_status(exc)) from exc


def _s3_error_code(exc: Exception) -> str:
    """Extract the error code from a botocore ClientError, or return ''."""
    try:
        response = getattr(exc, "response", None)
        if isinstance(response, dict):
            error = response.get("Error", {})
            if isinstance(error, dict):
                code = error.get("Code", "")
                return str(code) if code else ""
    except Exception:  # noqa: BLE001
        pass
    return ""


def _status(exc: Exception) -> str | None:
    """Normalised status for a botocore error, or None if it carries no known code."""
    return _STATUS_CODES.get(_s3_error_code(exc))
