"""
AuthGate — the checks every callable runs before touching storage.

  1. app attestation present (when enforced)   else PreconditionFailed
  2. caller authenticated                       else Unauthenticated
  3. account found in the user directory        else Internal
  4. email verified                             else PreconditionFailed

Credential verification itself happens in the transport; the gate only reads
the CallContext it produced and asks the directory about the uid.
"""

from __future__ import annotations

import dataclasses
import logging

from jlobby.domain.errors import (
    Internal,
    JLobbyError,
    PreconditionFailed,
    Unauthenticated,
)
from jlobby.domain.models import CallContext, UserRecord
from jlobby.ports.identity import UserDirectoryPort

logger = logging.getLogger(__name__)

APP_CHECK_FAILED = "App Check verification failed"
AUTHENTICATION_REQUIRED = "Authentication required"
USER_LOOKUP_FAILED = "Failed to retrieve user information"
EMAIL_NOT_VERIFIED = "use a verified email address to continue"


@dataclasses.dataclass
class AuthGate:
    directory: UserDirectoryPort
    enforce_app_check: bool = True

    async def authorize(self, context: CallContext, operation: str) -> UserRecord:
        """Return the caller's account, or raise the CallableError that rejects it."""
        if self.enforce_app_check and not context.app_check:
            logger.warning(f"App Check token missing in {operation} request")
            raise PreconditionFailed(APP_CHECK_FAILED)

        if not context.uid:
            logger.warning(f"Unauthenticated request to {operation}")
            raise Unauthenticated(AUTHENTICATION_REQUIRED)

        uid = context.uid
        logger.debug(f"{operation} called", extra={"uid": uid})

        try:
            user = await self.directory.get_user(uid)
        except JLobbyError as exc:
            logger.error(
                "Error getting user record", extra={"uid": uid, "error": str(exc)}
            )
            raise Internal(USER_LOOKUP_FAILED) from exc

        if not user.email_verified:
            logger.warning("Email not verified", extra={"uid": uid, "email": user.email})
            raise PreconditionFailed(EMAIL_NOT_VERIFIED)

        return user
