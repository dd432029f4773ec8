"""Logging setup: JSON or plain text on stderr."""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Optional

_HANDLER_NAME = "catalog_kernel"

# LogRecord attributes that are not user-supplied extras
_RESERVED = set(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime"}


class JsonFormatter(logging.Formatter):
    """One JSON object per line, including any ``extra`` fields."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key, value in record.__dict__.items():
            if key not in _RESERVED and not key.startswith("_"):
                entry[key] = value
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def configure_logging(level: str = "INFO", fmt: str = "text", stream: Optional[object] = None) -> logging.Handler:
    """
    Install a single handler on the ``catalog_kernel`` logger.

    Calling it again replaces the previous handler instead of adding another.
    """
    logger = logging.getLogger("catalog_kernel")
    for handler in list(logger.handlers):
        if handler.get_name() == _HANDLER_NAME:
            logger.removeHandler(handler)

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.set_name(_HANDLER_NAME)
    if fmt == "json":
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
        ))

    logger.addHandler(handler)
    logger.setLevel(level.upper())
    return handler
