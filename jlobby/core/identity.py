"""
IdentityReservation — create a user together with a globally unique username.

The store only guarantees atomicity per key, so the two records are created
by two single-key transactions, in this order:

  usernames/{username}  ← {uid, created_at}
  users/{uid}           ← {created_at, username, email_address}

Reservation phase
-----------------
Up to `username_policy.attempts` create-if-absent transactions with no pause
in between. Attempts after the first re-read the reservation and stop with
AlreadyExists if another caller now holds it. A transaction that does not
commit, or any store failure, moves on to the next attempt.
Exhaustion → Internal("Something is wrong").

Identity phase
--------------
Up to `identity_policy.attempts` create-if-absent transactions on users/{uid},
pausing `identity_policy.delay` before each retry. The record reuses the
created_at committed with the reservation, so both documents agree on it.
Exhaustion → the reservation is deleted again (best effort, guarded by the
etag it was committed with) and Internal("Something is Wrong"). The same
release runs, shielded, when the identity phase raises or is cancelled.

Between the two phases a reservation exists without its user. That window is
accepted: a concurrent reader sees the name as taken, which is the safe side.

The two Internal messages differ only in the case of "wrong"; clients already
match on both strings, so neither is normalised.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import re
from datetime import datetime

from jlobby.core.gate import AuthGate
from jlobby.core.guard import guarded
from jlobby.core.keyspace import M, Keyspace, TransactionFn, TransactionResult
from jlobby.core.retry import Failure, RetryLoop, RetryPolicy, SleepFn, classify
from jlobby.domain.errors import (
    AlreadyExists,
    Internal,
    InvalidArgument,
)
from jlobby.domain.models import (
    CallContext,
    CallResult,
    UserIdentity,
    UsernameReservation,
    UserRecord,
)

logger = logging.getLogger(__name__)

# Lowercase letter first, then 7–14 of [a-z0-9_]: 8–15 characters in total.
USERNAME_PATTERN = re.compile(r"[a-z][a-z0-9_]{7,14}")

USERNAME_NOT_STRING = "username is required and must be a string"
USERNAME_RULES_FAILED = "username rules failed"
USER_ALREADY_EXISTS = "user already exists"
USERNAME_TAKEN = "username already taken"
RESERVATION_EXHAUSTED = "Something is wrong"
IDENTITY_EXHAUSTED = "Something is Wrong"


def normalize_username(raw: object) -> str:
    """
    Trim and validate a requested username.

    Raises InvalidArgument without saying which rule was broken.
    """
    if not isinstance(raw, str):
        raise InvalidArgument(USERNAME_NOT_STRING)
    username = raw.strip()
    if USERNAME_PATTERN.fullmatch(username) is None:
        raise InvalidArgument(USERNAME_RULES_FAILED)
    return username


@dataclasses.dataclass
class IdentityReservation:
    """
    Parameters
    ----------
    gate            : AuthGate run before anything else
    users           : keyspace holding UserIdentity records
    usernames       : keyspace holding UsernameReservation records
    username_policy : attempts for the reservation phase (no delay)
    identity_policy : attempts and delay for the identity phase
    sleep           : awaitable sleep, replaced in tests
    """

    gate: AuthGate
    users: Keyspace[UserIdentity]
    usernames: Keyspace[UsernameReservation]
    username_policy: RetryPolicy = RetryPolicy(attempts=3)
    identity_policy: RetryPolicy = RetryPolicy(attempts=3, delay=0.5)
    sleep: SleepFn = asyncio.sleep

    @guarded("createNewUser")
    async def reserve_identity(
        self, context: CallContext, raw_username: object
    ) -> CallResult:
        user = await self.gate.authorize(context, "createNewUser")
        uid = user.uid

        try:
            username = normalize_username(raw_username)
        except InvalidArgument:
            logger.warning(
                "Username validation failed",
                extra={"uid": uid, "username": raw_username},
            )
            raise

        if await self.users.exists(uid):
            logger.warning("User already exists", extra={"uid": uid})
            raise AlreadyExists(USER_ALREADY_EXISTS)

        if await self.usernames.exists(username):
            logger.warning("Username already taken", extra={"uid": uid, "username": username})
            raise AlreadyExists(USERNAME_TAKEN)

        reservation, etag = await self._reserve_username(uid, username)
        try:
            created = await self._create_identity(user, username, reservation)
        except BaseException:
            # Also on cancellation; the shielded release outlives the caller.
            await asyncio.shield(self._release_username(uid, username, etag))
            raise
        if not created:
            logger.error(
                "All retries failed for user creation, cleaning up username",
                extra={"uid": uid, "username": username},
            )
            await asyncio.shield(self._release_username(uid, username, etag))
            raise Internal(IDENTITY_EXHAUSTED)

        logger.info("User profile created successfully", extra={"uid": uid, "username": username})
        return CallResult(username=username, uid=uid)

    # ------------------------------------------------------------------ #
    # Reservation phase                                                    #
    # ------------------------------------------------------------------ #

    async def _reserve_username(
        self, uid: str, username: str
    ) -> tuple[UsernameReservation, str | None]:
        """Commit usernames/{username}. Returns the committed record and its etag."""

        def _fn(
            current: UsernameReservation | None, now: datetime
        ) -> UsernameReservation | None:
            if current is not None:
                return None
            return UsernameReservation(uid=uid, created_at=now)

        loop = RetryLoop(self.username_policy, self.sleep)
        while await loop.next():
            if not loop.first and await self.usernames.exists(username):
                logger.warning(
                    "Username taken during retry",
                    extra={"uid": uid, "username": username, "attempt": loop.attempt},
                )
                raise AlreadyExists(USERNAME_TAKEN)

            result = await self._attempt(self.usernames, username, _fn)
            if isinstance(result, str):
                reason = result
            elif result.committed and result.snapshot is not None:
                logger.info(
                    "Username created successfully",
                    extra={"uid": uid, "username": username, "attempt": loop.attempt},
                )
                return result.snapshot, result.etag
            else:
                reason = "transaction aborted - username may have been taken"

            logger.warning(
                "Failed to create username",
                extra={
                    "uid": uid,
                    "username": username,
                    "attempt": loop.attempt,
                    "error": reason,
                },
            )

        logger.error(
            "All retries failed for username creation",
            extra={"uid": uid, "username": username, "attempts": loop.attempt},
        )
        raise Internal(RESERVATION_EXHAUSTED)

    # ------------------------------------------------------------------ #
    # Identity phase                                                       #
    # ------------------------------------------------------------------ #

    async def _create_identity(
        self,
        user: UserRecord,
        username: str,
        reservation: UsernameReservation,
    ) -> bool:
        """Commit users/{uid}. Returns False once the attempt budget is spent."""
        identity = UserIdentity(
            created_at=reservation.created_at,
            username=username,
            email_address=user.email,
        )

        def _fn(current: UserIdentity | None, _now: datetime) -> UserIdentity | None:
            return identity if current is None else None

        loop = RetryLoop(self.identity_policy, self.sleep)
        while await loop.next():
            result = await self._attempt(self.users, user.uid, _fn)
            if isinstance(result, str):
                reason = result
            elif result.committed:
                logger.info(
                    "User created successfully",
                    extra={"uid": user.uid, "username": username, "attempt": loop.attempt},
                )
                return True
            else:
                reason = "transaction aborted - user may already exist"

            logger.warning(
                "Failed to create user",
                extra={
                    "uid": user.uid,
                    "username": username,
                    "attempt": loop.attempt,
                    "error": reason,
                },
            )
        return False

    @staticmethod
    async def _attempt(
        keyspace: Keyspace[M], doc_id: str, fn: TransactionFn[M]
    ) -> TransactionResult[M] | str:
        """
        Run one transaction. Any failure comes back as its text so the
        caller can spend another attempt; a confirmed conflict is re-raised.
        """
        try:
            return await keyspace.transaction(doc_id, fn)
        except Exception as exc:
            if classify(exc) is Failure.CONFLICT:
                raise
            return str(exc)

    async def _release_username(
        self, uid: str, username: str, etag: str | None
    ) -> None:
        """Compensating delete. Failure is logged and otherwise ignored."""
        try:
            await self.usernames.delete(username, if_match=etag)
        except Exception as exc:
            logger.error(
                "Failed to cleanup username",
                extra={"uid": uid, "username": username, "error": str(exc)},
            )
            return
        logger.info(
            "Cleaned up username after user creation failure",
            extra={"uid": uid, "username": username},
        )
