"""
Logging setup for jlobby.

Modules log through `logging.getLogger(__name__)` and attach request context
with `extra=`:

    logger.warning("Username already taken", extra={"uid": uid, "username": name})

configure_logging() installs one stream handler on the "jlobby" logger whose
formatter emits a single JSON object per record, with the extra fields merged
in next to level, message and timestamp.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import UTC, datetime
from typing import IO

# Attributes every LogRecord carries; anything else came in through extra=.
_RESERVED = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None)).keys()
) | {"message", "asctime"}


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, object] = {
            "level": record.levelname.lower(),
            "message": record.getMessage(),
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "logger": record.name,
        }
        for key, value in vars(record).items():
            if key not in _RESERVED and not key.startswith("_"):
                payload[key] = value
        if record.exc_info:
            payload["stack"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def configure_logging(
    level: str | int = logging.INFO, stream: IO[str] | None = None
) -> logging.Logger:
    """Attach a JSON handler to the jlobby logger. Safe to call more than once."""
    logger = logging.getLogger("jlobby")
    for handler in list(logger.handlers):
        if getattr(handler, "_jlobby", False):
            logger.removeHandler(handler)
    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(JsonFormatter())
    handler._jlobby = True  # type: ignore[attr-defined]
    logger.addHandler(handler)
    logger.setLevel(level)
    return logger
