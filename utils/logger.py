# utils/logger.py
# SkillTrack — Structured JSON logger shared by the engine, store and API.
# Imports from: nothing internal.

import json
import logging
import os
import sys
import traceback
from datetime import datetime, timezone
from typing import Any

LOG_LEVEL: str = os.getenv("SKILLTRACK_LOG_LEVEL", "INFO").upper()

# LogRecord attributes that are not structured fields
_RESERVED: frozenset[str] = frozenset({
    "name", "msg", "args", "levelname", "levelno", "pathname",
    "filename", "module", "exc_info", "exc_text", "stack_info",
    "lineno", "funcName", "created", "msecs", "relativeCreated",
    "thread", "threadName", "processName", "process", "message",
    "component", "taskName",
})


class JSONFormatter(logging.Formatter):
    """
    Renders a record as one JSON object per line:
    timestamp, level, component, event, then every structured field.
    """

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level":     record.levelname,
            "component": getattr(record, "component", record.name),
            "event":     record.getMessage(),
        }

        for key, value in record.__dict__.items():
            if key not in _RESERVED:
                payload[key] = value

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        elif record.exc_text:
            payload["exception"] = record.exc_text

        return json.dumps(payload, default=str)


class SkillTrackLogger:
    """
    Thin wrapper over a stdlib Logger named ``skilltrack.<component>``.
    Every method takes an event name plus keyword fields:

        log = get_logger("analysis.rating_engine")
        log.info("rating_updated", topic_id=7, rating_change=12.4)
    """

    def __init__(self, component: str) -> None:
        self.component = component
        self._logger = logging.getLogger(f"skilltrack.{component}")

        if not self._logger.handlers:
            handler = logging.StreamHandler(sys.stdout)
            handler.setFormatter(JSONFormatter())
            self._logger.addHandler(handler)
            self._logger.setLevel(LOG_LEVEL)
            self._logger.propagate = False

    def _emit(self, level: int, event: str, fields: dict[str, Any]) -> None:
        fields["component"] = self.component
        self._logger.log(level, event, extra=fields)

    def debug(self, event: str, **fields: Any) -> None:
        self._emit(logging.DEBUG, event, fields)

    def info(self, event: str, **fields: Any) -> None:
        self._emit(logging.INFO, event, fields)

    def warning(self, event: str, **fields: Any) -> None:
        self._emit(logging.WARNING, event, fields)

    def error(self, event: str, **fields: Any) -> None:
        self._emit(logging.ERROR, event, fields)

    def exception(self, event: str, **fields: Any) -> None:
        """ERROR level with the active traceback attached."""
        fields["traceback"] = traceback.format_exc()
        self._emit(logging.ERROR, event, fields)


def get_logger(component: str) -> SkillTrackLogger:
    """Every module obtains its logger here, keyed by dotted component name."""
    return SkillTrackLogger(component)
