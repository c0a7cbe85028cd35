"""Logging setup for the Keel backend.

Every module logs through ``logging.getLogger(__name__)``; the records end up
on the ``keel`` logger, which gets a single stdout handler with labelled
prefixes (INFO|WARN|ERROR).
"""
from __future__ import annotations

import logging
import sys

from .config import LOG_LEVEL

__all__ = ["setup_logging", "reset_logging"]

ROOT_LOGGER = "keel"

_configured = False


class LabeledFormatter(logging.Formatter):
    """Prefix each message with a short level label and the logger name."""

    LEVEL_LABELS = {
        logging.DEBUG: "DEBUG",
        logging.INFO: "INFO",
        logging.WARNING: "WARN",
        logging.ERROR: "ERROR",
        logging.CRITICAL: "CRITICAL",
    }

    def format(self, record: logging.LogRecord) -> str:
        label = self.LEVEL_LABELS.get(record.levelno, record.levelname)
        line = f"{label} [{record.name}] {record.getMessage()}"
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def setup_logging(level: str | int | None = None) -> logging.Logger:
    """Configure the ``keel`` logger once; later calls return it unchanged."""
    global _configured

    logger = logging.getLogger(ROOT_LOGGER)
    if _configured:
        return logger

    logger.setLevel(level or LOG_LEVEL)

    # Clear any existing handlers to avoid duplication (uvicorn --reload)
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(LabeledFormatter())
    logger.addHandler(handler)

    _configured = True
    return logger


def reset_logging() -> None:
    """Forget the configured state. Mainly for tests."""
    global _configured
    _configured = False
