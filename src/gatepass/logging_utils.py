"""Logging setup for the gate-pass service."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

from gatepass.config import LoggingSettings, load_settings

_logger = logging.getLogger(__name__)

_LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"

# RequestLoggingMiddleware already records one line per request.
_QUIET_LOGGERS = ("uvicorn.access",)


def _formatter() -> logging.Formatter:
    return logging.Formatter(_LOG_FORMAT, datefmt=_DATE_FORMAT)


def _build_handlers(settings: LoggingSettings) -> list[logging.Handler]:
    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setFormatter(_formatter())
    handlers: list[logging.Handler] = [stream_handler]

    if settings.file:
        try:
            Path(settings.file).parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(settings.file, encoding="utf-8")
        except OSError as exc:
            _logger.warning("Failed to open log file %s: %s", settings.file, exc)
        else:
            file_handler.setFormatter(_formatter())
            handlers.append(file_handler)
    return handlers


def configure_logging() -> None:
    """Route service, engine and store loggers to stderr and the optional log file."""
    settings = load_settings().logging
    level = getattr(logging, settings.level.upper(), logging.INFO)

    logging.basicConfig(level=level, handlers=_build_handlers(settings), force=True)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
