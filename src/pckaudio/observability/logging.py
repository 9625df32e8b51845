"""Structured logging setup for pckaudio."""

from __future__ import annotations

from datetime import datetime, timezone
import json
import logging
from typing import Any


# Attributes every LogRecord carries; anything else came in through `extra`.
_RESERVED = frozenset(logging.LogRecord("", 0, "", 0, "", None, None).__dict__) | {
    "message",
    "asctime",
}


def record_fields(record: logging.LogRecord) -> dict[str, Any]:
    """Return the structured `extra` fields attached to a log record."""

    return {
        key: value
        for key, value in record.__dict__.items()
        if key not in _RESERVED and not key.startswith("_")
    }


class _JsonFormatter(logging.Formatter):
    """Emit one JSON object per log record."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(record_fields(record))

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return json.dumps(payload, sort_keys=True, default=str)


def configure_logging(level: str = "INFO") -> logging.Logger:
    """Configure and return the root pckaudio logger."""

    logger = logging.getLogger("pckaudio")
    if logger.handlers:
        return logger

    handler = logging.StreamHandler()
    handler.setFormatter(_JsonFormatter())
    logger.addHandler(handler)
    logger.setLevel(level.upper())
    logger.propagate = False
    return logger


def set_level(level: str) -> None:
    """Change the level of the configured pckaudio logger."""

    configure_logging().setLevel(level.upper())


def get_logger(name: str = "pckaudio") -> logging.Logger:
    """Return a logger under the configured pckaudio namespace."""

    configure_logging()
    return logging.getLogger(name)


def log_event(
    logger: logging.Logger,
    event: str,
    *,
    level: int = logging.INFO,
    **fields: Any,
) -> None:
    """Emit a structured event log line."""

    logger.log(level, event, extra={"event": event, **fields})
