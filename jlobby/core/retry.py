"""
Bounded retry as an explicit state machine.

Each retrying operation in jlobby is written as

    loop = RetryLoop(policy, sleep)
    while await loop.next():
        try:
            ...            # one attempt
            return ...
        except JLobbyError as exc:
            if classify(exc) is not Failure.CONTENDED:
                break

RetryLoop owns the attempt counter and the inter-attempt sleep; classify()
decides what a failure means. Neither touches storage, so both are testable
in isolation.

Classification
--------------
CONFLICT   definitive business conflict (AlreadyExists) — terminal
CONTENDED  the key was concurrently modified or the backend is briefly
           unavailable: CASConflictError, StorageError whose code is one of
           CONTENDED_CODES, or whose text mentions concurrency / locking
OTHER      anything else — retrying will not help
"""

from __future__ import annotations

import asyncio
import dataclasses
from collections.abc import Awaitable, Callable
from enum import Enum

from jlobby.domain.errors import AlreadyExists, CASConflictError, StorageError

SleepFn = Callable[[float], Awaitable[None]]

CONTENDED_CODES: frozenset[str] = frozenset(
    {"aborted", "failed-precondition", "unavailable"}
)
_CONTENDED_WORDS: tuple[str, ...] = ("concurrent", "locked")


class Failure(str, Enum):
    CONFLICT = "conflict"
    CONTENDED = "contended"
    OTHER = "other"


def classify(exc: BaseException) -> Failure:
    """Map an exception raised by one attempt to a retry decision."""
    if isinstance(exc, AlreadyExists):
        return Failure.CONFLICT
    if isinstance(exc, CASConflictError):
        return Failure.CONTENDED
    if isinstance(exc, StorageError) and exc.code in CONTENDED_CODES:
        return Failure.CONTENDED
    text = str(exc).lower()
    if any(word in text for word in _CONTENDED_WORDS):
        return Failure.CONTENDED
    return Failure.OTHER


@dataclasses.dataclass(frozen=True)
class RetryPolicy:
    """
    attempts — total attempts, including the first
    delay    — seconds slept before every attempt after the first
    """

    attempts: int
    delay: float = 0.0

    def __post_init__(self) -> None:
        if self.attempts < 1:
            raise ValueError(f"attempts must be >= 1, got {self.attempts}")
        if self.delay < 0:
            raise ValueError(f"delay must be >= 0, got {self.delay}")


@dataclasses.dataclass
class RetryLoop:
    """
    Attempt counter for one retrying operation.

    next() returns True while attempts remain, sleeping policy.delay before
    every attempt after the first. The sleep is a plain await, so cancelling
    the surrounding task stops the loop mid-wait.
    """

    policy: RetryPolicy
    sleep: SleepFn = asyncio.sleep
    attempt: int = dataclasses.field(default=0, init=False)

    @property
    def first(self) -> bool:
        return self.attempt == 1

    @property
    def exhausted(self) -> bool:
        return self.attempt >= self.policy.attempts

    async def next(self) -> bool:
        if self.exhausted:
            return False
        if self.attempt > 0 and self.policy.delay > 0:
            await self.sleep(self.policy.delay)
        self.attempt += 1
        return True
