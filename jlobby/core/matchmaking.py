"""
QueueMembership — join and leave the quick matchmaking queue.

A queue entry is keyed by the caller's own uid, so callers can only ever
touch their own entry.

join_queue
----------
  gate → presence check → point read → unconditional set

The read and the set are not atomic. Two concurrent joins by the same caller
can both pass the read; the later set simply refreshes created_at. No other
caller can be affected, so the gap is accepted.

Membership is gated on presence only. A caller does not need a users/{uid}
record to be queued.

leave_queue
-----------
Delete-with-retry, always reporting success. Each attempt reads the entry
(absent → done) and deletes it. Contended failures sleep and retry; any
other failure stops immediately. A matchmaking consumer may be removing the
same entry at the same time, so losing that race must not fail the caller.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from enum import Enum

from jlobby.core.gate import AuthGate
from jlobby.core.guard import guarded
from jlobby.core.keyspace import Keyspace
from jlobby.core.retry import Failure, RetryLoop, RetryPolicy, SleepFn, classify
from jlobby.domain.errors import AlreadyExists, JLobbyError, PreconditionFailed
from jlobby.domain.models import CallContext, CallResult, QueueEntry
from jlobby.ports.identity import PresencePort

logger = logging.getLogger(__name__)

USER_NOT_ONLINE = "User Not Online"
ALREADY_WAITING = "User Already Waiting to be matched"


class RemovalOutcome(str, Enum):
    """How a delete-with-retry ended. None of these reach the caller."""

    DELETED = "deleted"
    ABSENT = "absent"
    CONTENDED = "contended"
    FAILED = "failed"


@dataclasses.dataclass
class QueueMembership:
    """
    Parameters
    ----------
    gate        : AuthGate run before anything else
    queue       : keyspace holding QueueEntry records
    presence    : presence side channel consulted by join_queue
    leave_policy: attempts and delay for leave_queue's delete loop
    sleep       : awaitable sleep, replaced in tests
    """

    gate: AuthGate
    queue: Keyspace[QueueEntry]
    presence: PresencePort
    leave_policy: RetryPolicy = RetryPolicy(attempts=10, delay=0.5)
    sleep: SleepFn = asyncio.sleep

    @guarded("quickMatch")
    async def join_queue(self, context: CallContext) -> CallResult:
        user = await self.gate.authorize(context, "quickMatch")
        uid = user.uid

        if not await self.presence.is_online(uid):
            logger.warning("User not online", extra={"uid": uid})
            raise PreconditionFailed(USER_NOT_ONLINE)

        if await self.queue.exists(uid):
            logger.warning("User already waiting to be matched", extra={"uid": uid})
            raise AlreadyExists(ALREADY_WAITING)

        await self.queue.set(uid, QueueEntry(uid=uid, created_at=self.queue.clock()))
        logger.info("User added to quick matchmaking queue", extra={"uid": uid})
        return CallResult()

    @guarded("cancelQuickMatch")
    async def leave_queue(self, context: CallContext) -> CallResult:
        user = await self.gate.authorize(context, "cancelQuickMatch")
        uid = user.uid

        outcome = await self.remove(uid)
        if outcome in (RemovalOutcome.DELETED, RemovalOutcome.ABSENT):
            logger.info("User removed from quick matchmaking queue", extra={"uid": uid})
        else:
            logger.warning(
                "Failed to remove user from queue after retries",
                extra={"uid": uid, "outcome": outcome.value},
            )
        return CallResult()

    async def remove(self, uid: str) -> RemovalOutcome:
        """
        Delete the queue entry for uid, retrying contended failures.

        Never raises for store failures; the outcome says what happened.
        """
        loop = RetryLoop(self.leave_policy, self.sleep)
        while await loop.next():
            try:
                if not await self.queue.exists(uid):
                    logger.debug("Queue entry does not exist, nothing to delete")
                    return RemovalOutcome.ABSENT
                await self.queue.delete(uid)
                logger.debug("Queue entry deleted", extra={"attempt": loop.attempt})
                return RemovalOutcome.DELETED
            except JLobbyError as exc:
                code = getattr(exc, "code", None)
                if classify(exc) is not Failure.CONTENDED:
                    logger.warning(
                        "Unexpected error during delete",
                        extra={"attempt": loop.attempt, "code": code, "error": str(exc)},
                    )
                    return RemovalOutcome.FAILED
                logger.debug(
                    "Queue entry locked, retrying",
                    extra={
                        "attempt": loop.attempt,
                        "max_attempts": self.leave_policy.attempts,
                        "code": code,
                    },
                )

        logger.warning(
            "Queue entry still locked after max retries",
            extra={"max_attempts": self.leave_policy.attempts},
        )
        return RemovalOutcome.CONTENDED
