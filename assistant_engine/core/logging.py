"""Key=value structured logging for the chat service."""

import logging
import sys
from typing import Any

from pydantic import ValidationError

# Request-scoped fields promoted to the front of every line when present
CONTEXT_FIELDS = ("request_id", "user_id", "session_id")


class StructuredFormatter(logging.Formatter):
    """Renders records as ``key=value`` pairs, context fields first."""

    def format(self, record: logging.LogRecord) -> str:
        fields: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "module": record.module,
        }
        for name in CONTEXT_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                fields[name] = value
        fields["message"] = record.getMessage()
        fields.update(getattr(record, "extra_data", None) or {})
        if record.exc_info:
            fields["exc"] = self.formatException(record.exc_info).replace("\n", " | ")
        return " ".join(f"{k}={v}" for k, v in fields.items())


def _level_for_env() -> int:
    from assistant_engine.core.config import get_settings

    try:
        env = get_settings().ENGINE_ENV
    except ValidationError:
        # Required settings missing (e.g. imported by tooling)
        return logging.INFO
    return logging.DEBUG if env == "dev" else logging.INFO


def get_logger(name: str) -> logging.Logger:
    """
    Logger writing structured lines to stdout.

    Args:
        name: Logger name (typically __name__)
    """
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(StructuredFormatter())
        logger.addHandler(handler)
        logger.setLevel(_level_for_env())
    return logger


def log_with_context(logger: logging.Logger, level: int, msg: str, **kwargs: Any) -> None:
    """
    Log ``msg`` with request context and arbitrary extra fields.

    ``request_id``, ``user_id`` and ``session_id`` are lifted onto the record;
    everything else is appended as ``extra_data``.
    """
    extra: dict[str, Any] = {name: kwargs.pop(name) for name in CONTEXT_FIELDS if name in kwargs}
    extra["extra_data"] = kwargs
    logger.log(level, msg, extra=extra)
