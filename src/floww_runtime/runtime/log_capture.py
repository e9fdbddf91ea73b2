"""Capture of handler log output for execution reports.

Handlers log through `ctx.logger`, which tags each record with the dispatch id.
A `LogCapture` attached for one dispatch call keeps only that call's records, so
concurrent dispatches in one container do not mix their logs. Records still flow
to the normal handlers (tee behaviour).
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import UTC, datetime
from types import TracebackType

from floww_runtime.runtime.logging import USER_LOGGER_NAME


@dataclass(frozen=True, slots=True)
class StructuredLogEntry:
    timestamp: str
    level: str
    message: str

    def to_json(self) -> dict[str, str]:
        return {"timestamp": self.timestamp, "level": self.level, "message": self.message}


class LogCapture(logging.Handler):
    # Captures from concurrent dispatches share one level override on the user logger.
    _override_lock = threading.Lock()
    _active = 0
    _previous_level = logging.NOTSET

    def __init__(self, dispatch_id: str) -> None:
        super().__init__(level=logging.NOTSET)
        self._dispatch_id = dispatch_id
        self._entries: list[StructuredLogEntry] = []

    def emit(self, record: logging.LogRecord) -> None:
        if getattr(record, "dispatch_id", None) != self._dispatch_id:
            return
        self._entries.append(
            StructuredLogEntry(
                timestamp=datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
                level=record.levelname.lower(),
                message=record.getMessage(),
            )
        )

    def entries(self) -> list[StructuredLogEntry]:
        with self.lock:
            return list(self._entries)

    def __enter__(self) -> LogCapture:
        user_logger = logging.getLogger(USER_LOGGER_NAME)
        with LogCapture._override_lock:
            if LogCapture._active == 0:
                LogCapture._previous_level = user_logger.level
                # Handler output is reported at INFO even when the root logger is quieter.
                if user_logger.level == logging.NOTSET:
                    user_logger.setLevel(logging.INFO)
            LogCapture._active += 1
        user_logger.addHandler(self)
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        user_logger = logging.getLogger(USER_LOGGER_NAME)
        user_logger.removeHandler(self)
        with LogCapture._override_lock:
            LogCapture._active -= 1
            if LogCapture._active == 0:
                user_logger.setLevel(LogCapture._previous_level)
