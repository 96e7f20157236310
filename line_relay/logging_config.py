"""JSON logging for the LINE relay.

One JSON object per line on stdout. Per-call details travel in
``extra={"context": {...}}``; events are correlated by webhook mode and the
tail of the LINE user id, never the full id.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Optional, TextIO

LOGGER_PREFIX = "line_relay"
USER_TAIL_CHARS = 6
QUIET_LOGGERS = ("httpx", "httpcore", "uvicorn.access")


class JSONFormatter(logging.Formatter):
    """Format log records as JSON."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        context = getattr(record, "context", None)
        if context:
            log_data["context"] = context

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        # Outcome enums and expiry datetimes end up in context.
        return json.dumps(log_data, ensure_ascii=False, default=str)


def setup_logging(level: str = "INFO", stream: Optional[TextIO] = None) -> None:
    """Route every logger through one JSON handler; unknown levels mean INFO."""
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(JSONFormatter())
    root_logger.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(f"{LOGGER_PREFIX}.{name}")


def user_tail(user_id: Optional[str]) -> str:
    """Last characters of a user id, enough to correlate logs without leaking it."""
    if not user_id:
        return "(none)"
    return user_id[-USER_TAIL_CHARS:]


def event_context(mode: Optional[str], user_id: Optional[str], **fields: Any) -> dict:
    """Correlation fields shared by every log line about one inbound event."""
    return {"mode": mode or "(unknown)", "user": user_tail(user_id), **fields}
