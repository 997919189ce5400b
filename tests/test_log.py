import io
import json
import logging
import sys

import pytest

from jlobby.log import JsonFormatter, configure_logging


@pytest.fixture
def jlobby_logger():
    logger = logging.getLogger("jlobby")
    level = logger.level
    yield logger
    for handler in list(logger.handlers):
        if getattr(handler, "_jlobby", False):
            logger.removeHandler(handler)
    logger.setLevel(level)


def _record(msg: str, level: int = logging.INFO, **extra) -> logging.LogRecord:
    record = logging.LogRecord("jlobby.core.identity", level, __file__, 1, msg, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_formatter_emits_json_with_extras() -> None:
    line = JsonFormatter().format(
        _record("Username already taken", logging.WARNING, uid="abc", username="x")
    )
    payload = json.loads(line)
    assert payload["level"] == "warning"
    assert payload["message"] == "Username already taken"
    assert payload["logger"] == "jlobby.core.identity"
    assert payload["uid"] == "abc"
    assert payload["username"] == "x"
    assert "timestamp" in payload


def test_formatter_skips_standard_attributes() -> None:
    payload = json.loads(JsonFormatter().format(_record("hello")))
    assert "lineno" not in payload
    assert "args" not in payload


def test_formatter_includes_stack() -> None:
    try:
        raise RuntimeError("boom")
    except RuntimeError:
        record = logging.LogRecord(
            "jlobby", logging.ERROR, __file__, 1, "failed", None, sys.exc_info()
        )
    payload = json.loads(JsonFormatter().format(record))
    assert "RuntimeError: boom" in payload["stack"]


def test_formatter_stringifies_unserialisable_values() -> None:
    payload = json.loads(JsonFormatter().format(_record("x", error=ValueError("bad"))))
    assert payload["error"] == "bad"


def test_configure_logging_writes_json(jlobby_logger) -> None:
    stream = io.StringIO()
    configure_logging("INFO", stream=stream)

    logging.getLogger("jlobby.core.matchmaking").info(
        "User added to quick matchmaking queue", extra={"uid": "abc"}
    )

    payload = json.loads(stream.getvalue().strip())
    assert payload["message"] == "User added to quick matchmaking queue"
    assert payload["uid"] == "abc"


def test_configure_logging_respects_level(jlobby_logger) -> None:
    stream = io.StringIO()
    configure_logging("WARNING", stream=stream)

    logging.getLogger("jlobby.core.gate").info("quiet")

    assert stream.getvalue() == ""


def test_configure_logging_is_idempotent(jlobby_logger) -> None:
    configure_logging(stream=io.StringIO())
    configure_logging(stream=io.StringIO())
    ours = [h for h in jlobby_logger.handlers if getattr(h, "_jlobby", False)]
    assert len(ours) == 1


def test_configure_logging_defaults_to_stderr(jlobby_logger, capsys) -> None:
    configure_logging()

    logging.getLogger("jlobby.core.identity").warning("Username already taken")

    captured = capsys.readouterr()
    assert captured.out == ""
    assert json.loads(captured.err.strip())["message"] == "Username already taken"
