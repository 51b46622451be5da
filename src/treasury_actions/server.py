"""Entrypoint for the treasury action HTTP server."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

if __package__ in (None, ""):
    sys.path.insert(0, str(Path(__file__).resolve().parents[1]))  # pragma: no cover

import uvicorn

from treasury_actions import __version__
from treasury_actions.config import load_settings
from treasury_actions.logging_utils import configure_logging

logger = logging.getLogger(__name__)


def run_entrypoint() -> None:
    """Configure logging and serve the HTTP app."""
    settings = load_settings()
    configure_logging(settings)
    logger.info("Initializing treasury action server v%s", __version__)
    logger.info("Log file configured at: %s", settings.logging.file)

    from treasury_actions.transport.http_server import create_http_app

    app = create_http_app()
    # JSON API only; no websocket endpoints.
    uvicorn.run(
        app,
        host=settings.server.host,
        port=settings.server.port,
        ws="none",
        log_config=None,
    )


if __name__ == "__main__":  # pragma: no cover
    run_entrypoint()
