"""
Top-level guard for callable handlers.

Every public handler is wrapped with @guarded("name"). CallableError passes
through untouched; any other exception is logged with its traceback and
replaced by a generic Internal error so no diagnostic detail reaches the
caller. Cancellation is a BaseException and is never intercepted.
"""

from __future__ import annotations

import functools
import logging
from collections.abc import Awaitable, Callable
from typing import ParamSpec, TypeVar

from jlobby.domain.errors import CallableError, Internal

logger = logging.getLogger(__name__)

P = ParamSpec("P")
R = TypeVar("R")

UNEXPECTED_ERROR = "An unexpected error occurred"


def guarded(
    operation: str,
) -> Callable[[Callable[P, Awaitable[R]]], Callable[P, Awaitable[R]]]:
    def decorate(fn: Callable[P, Awaitable[R]]) -> Callable[P, Awaitable[R]]:
        @functools.wraps(fn)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            try:
                return await fn(*args, **kwargs)
            except CallableError:
                raise
            except Exception as exc:
                logger.exception(
                    f"Unexpected error in {operation}",
                    extra={"operation": operation, "error": str(exc)},
                )
                raise Internal(UNEXPECTED_ERROR) from exc

        return wrapper

    return decorate
