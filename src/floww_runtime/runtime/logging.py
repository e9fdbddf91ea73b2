"""JSON logging for the runtime and for handler output.

Records logged through `ctx.logger` carry the dispatch, invocation and trigger they
belong to; the formatter lifts those to top-level keys so one dispatch can be
followed across concurrent invocations.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import UTC, datetime
from typing import Any

# Handlers log through children of this logger (see `InvocationContext.logger`).
USER_LOGGER_NAME = "floww.user"

CORRELATION_FIELDS = ("dispatch_id", "invocation_id", "trigger")

_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime"}


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        extra: dict[str, Any] = {}
        for key, value in vars(record).items():
            if key in _RECORD_ATTRS or key.startswith("_"):
                continue
            if key in CORRELATION_FIELDS:
                payload[key] = value
            else:
                extra[key] = value
        if extra:
            payload["extra"] = extra
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        # ASCII output: bundle-supplied strings may hold lone surrogates.
        return json.dumps(payload, default=str)


def configure_logging(level: str) -> None:
    """Send all records to stdout as JSON lines at *level*."""

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)

    handler = logging.StreamHandler(stream=sys.stdout)
    handler.setFormatter(JsonFormatter())
    root.addHandler(handler)
    root.setLevel(level.upper())

    # Provider API calls would otherwise log every connection.
    logging.getLogger("urllib3").setLevel(max(root.level, logging.INFO))
    logging.getLogger("uvicorn.access").setLevel(max(root.level, logging.WARNING))
