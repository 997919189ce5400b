"""
Exception hierarchy for jlobby.

JLobbyError
├── CASConflictError    — write/delete rejected because etag did not match
├── StorageError        — underlying I/O failure (wraps original exception)
├── UserNotFoundError   — uid not present in the user directory
└── CallableError       — caller-visible failure with a status code
    ├── Unauthenticated
    ├── PreconditionFailed
    ├── InvalidArgument
    ├── AlreadyExists
    └── Internal

Only CallableError subclasses ever reach the caller. Everything else is
translated to Internal by the handler guard.
"""

from __future__ import annotations

from enum import Enum


class JLobbyError(Exception):
    """Base class for all jlobby exceptions."""


class CASConflictError(JLobbyError):
    """
    Raised when a compare-and-set write or delete is rejected by the backend.

    The caller should re-read the current value and retry the operation.
    This is the normal concurrency signal — not an error in the traditional sense.
    """


class StorageError(JLobbyError):
    """
    Wraps an underlying I/O failure from a storage adapter.

    Attributes
    ----------
    cause : Exception
        The original exception from the storage backend.
    code : str | None
        Normalised status reported by the backend ("aborted", "unavailable",
        "permission-denied", ...) or None when it reported nothing usable.
    """

    def __init__(self, message: str, cause: Exception, code: str | None = None) -> None:
        self.cause = cause
        self.code = code
        super().__init__(f"{message}: {cause}")


class UserNotFoundError(JLobbyError):
    """Raised when a uid is not present in the user directory."""

    def __init__(self, uid: str) -> None:
        self.uid = uid
        super().__init__(f"User {uid!r} not found in directory")


class ErrorCode(str, Enum):
    """Status codes surfaced to callers, spelled the way callable clients expect."""

    UNAUTHENTICATED = "unauthenticated"
    FAILED_PRECONDITION = "failed-precondition"
    INVALID_ARGUMENT = "invalid-argument"
    ALREADY_EXISTS = "already-exists"
    INTERNAL = "internal"


class CallableError(JLobbyError):
    """
    A failure that is reported back to the caller verbatim.

    The message is part of the wire contract; never put diagnostic detail in it.
    """

    code: ErrorCode = ErrorCode.INTERNAL

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict[str, str]:
        return {"code": self.code.value, "message": self.message}


class Unauthenticated(CallableError):
    code = ErrorCode.UNAUTHENTICATED


class PreconditionFailed(CallableError):
    code = ErrorCode.FAILED_PRECONDITION


class InvalidArgument(CallableError):
    code = ErrorCode.INVALID_ARGUMENT


class AlreadyExists(CallableError):
    code = ErrorCode.ALREADY_EXISTS


class Internal(CallableError):
    code = ErrorCode.INTERNAL
