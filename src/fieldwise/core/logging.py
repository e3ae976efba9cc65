"""Structured logging configuration for Fieldwise."""

from __future__ import annotations

import logging
import sys
from typing import Any

from fieldwise.core.config import AppSettings


class StructuredFormatter(logging.Formatter):
    """key=value structured log formatter."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if hasattr(record, "extra_data"):
            log_data.update(record.extra_data)

        parts = [f"{k}={v}" for k, v in log_data.items()]
        if record.exc_info:
            parts.append(self.formatException(record.exc_info))
        return " ".join(parts)


def get_logger(name: str) -> logging.Logger:
    """Return a logger writing structured lines to stdout.

    The handler is attached once per logger; the level comes from
    ``AppSettings.log_level``.
    """
    logger = logging.getLogger(name)

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(StructuredFormatter())
        logger.addHandler(handler)
        logger.setLevel(AppSettings().log_level.upper())
        logger.propagate = False

    return logger


def log_with_context(logger: logging.Logger, level: int, msg: str, **fields: Any) -> None:
    """Log ``msg`` with additional structured fields (profile_id, counts, ...)."""
    logger.log(level, msg, extra={"extra_data": fields})
