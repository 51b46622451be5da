"""Logging helpers for the treasury action service."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

from treasury_actions.config import Settings, load_settings

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"

_logger = logging.getLogger(__name__)


def _formatter() -> logging.Formatter:
    return logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)


def configure_logging(settings: Settings | None = None) -> None:
    """Configure process-wide logging from the loaded settings."""
    settings = settings or load_settings()
    level = getattr(logging, settings.logging.level.upper(), logging.INFO)

    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setFormatter(_formatter())
    handlers: list[logging.Handler] = [stream_handler]

    file_error: OSError | None = None
    if settings.logging.file:
        try:
            Path(settings.logging.file).parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(settings.logging.file)
            file_handler.setFormatter(_formatter())
            handlers.append(file_handler)
        except OSError as exc:
            file_error = exc

    logging.basicConfig(level=level, handlers=handlers, force=True)

    if file_error is not None:
        _logger.warning("Failed to open log file %s: %s", settings.logging.file, file_error)
