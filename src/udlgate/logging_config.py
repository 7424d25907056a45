"""Logging setup for udlgate: human-readable text or one JSON object per line."""

import json
import logging
import sys
from datetime import datetime, timezone

_TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

# Request fields the access log passes via ``extra=``.
_REQUEST_FIELDS = ("request_id", "method", "path", "operation", "status", "duration_ms")

# Held at WARNING or above regardless of the configured level.
_NOISY_LOGGERS = ("botocore", "aiobotocore", "urllib3")


class JSONFormatter(logging.Formatter):
    """Render a record as a single JSON line.

    Always carries timestamp, level, logger and message. Request fields are
    copied through when the record has them.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(
            (field, getattr(record, field))
            for field in _REQUEST_FIELDS
            if getattr(record, field, None) is not None
        )
        if record.exc_info and record.exc_info[1] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def _formatter(fmt: str) -> logging.Formatter:
    if fmt == "json":
        return JSONFormatter()
    return logging.Formatter(_TEXT_FORMAT)


def configure_logging(level: str = "INFO", fmt: str = "text") -> None:
    """Send all log output to stderr.

    Replaces whatever handlers the root logger already has, so calling this
    again reconfigures rather than duplicating output.

    Args:
        level: Level name; unknown names fall back to INFO.
        fmt: 'json' for structured lines, anything else for plain text.
    """
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(_formatter(fmt))

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(numeric_level)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric_level, logging.WARNING))
