from __future__ import annotations

import json
import logging

from floww_runtime.runtime.log_capture import LogCapture
from floww_runtime.runtime.logging import USER_LOGGER_NAME, JsonFormatter


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name="floww_runtime.test",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg="Dispatch %s",
        args=("finished",),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_lifts_correlation_fields() -> None:
    record = _record(dispatch_id="d1", trigger="builtin:default.onCron#0", matched=2)
    payload = json.loads(JsonFormatter().format(record))

    assert payload["level"] == "INFO"
    assert payload["logger"] == "floww_runtime.test"
    assert payload["message"] == "Dispatch finished"
    assert payload["dispatch_id"] == "d1"
    assert payload["trigger"] == "builtin:default.onCron#0"
    assert payload["extra"] == {"matched": 2}


def test_json_formatter_omits_empty_extra() -> None:
    payload = json.loads(JsonFormatter().format(_record()))

    assert "extra" not in payload


def test_log_capture_keeps_only_its_dispatch() -> None:
    user_logger = logging.getLogger(f"{USER_LOGGER_NAME}.builtin")

    with LogCapture("mine") as capture:
        logging.LoggerAdapter(user_logger, {"dispatch_id": "mine"}).info("kept")
        logging.LoggerAdapter(user_logger, {"dispatch_id": "other"}).info("dropped")
        user_logger.info("untagged")

    user_logger.info("after exit")

    assert [(e.level, e.message) for e in capture.entries()] == [("info", "kept")]
    assert capture not in logging.getLogger(USER_LOGGER_NAME).handlers


def test_log_capture_restores_the_user_logger_level() -> None:
    user_logger = logging.getLogger(USER_LOGGER_NAME)
    assert user_logger.level == logging.NOTSET

    with LogCapture("outer"):
        assert user_logger.level == logging.INFO
        with LogCapture("inner"):
            assert user_logger.level == logging.INFO
        assert user_logger.level == logging.INFO

    assert user_logger.level == logging.NOTSET
