import json
import logging
import sys
from datetime import datetime, timezone

from config import settings

ROOT_LOGGER = "pixpress"

# Extras callers may attach with `extra={...}`; copied into the JSON line as-is
_PASSTHROUGH_FIELDS = ("request_id", "context")


class StructuredFormatter(logging.Formatter):
    """Render each record as a single JSON line.

    Always present: severity, message, timestamp (UTC, ISO 8601, taken from
    the record's creation time) and logger. request_id and context appear
    when the caller supplied them; traceback when exc_info is set.
    Values json can't encode are stringified.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "severity": record.levelname,
            "message": record.getMessage(),
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "logger": record.name,
        }
        entry.update(
            (field, getattr(record, field))
            for field in _PASSTHROUGH_FIELDS
            if hasattr(record, field)
        )
        if record.exc_info and record.exc_info[0] is not None:
            entry["traceback"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


def setup_logging(level: str | None = None) -> logging.Logger:
    """Send the pixpress logger tree to stdout as JSON lines.

    Safe to call more than once; previous handlers are replaced.
    """
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(StructuredFormatter())

    logger = logging.getLogger(ROOT_LOGGER)
    logger.handlers.clear()
    logger.addHandler(handler)
    logger.setLevel((level or settings.log_level).upper())

    # Pillow logs every plugin probe at DEBUG
    for noisy in ("PIL", "uvicorn.access"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    return logger


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")
