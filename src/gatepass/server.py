"""Entrypoint for the gate-pass HTTP service."""

from __future__ import annotations

import logging

from gatepass import __version__
from gatepass.config import load_settings
from gatepass.logging_utils import configure_logging

logger = logging.getLogger(__name__)


def run_entrypoint() -> None:
    """Run the HTTP API with uvicorn."""
    settings = load_settings()
    configure_logging()
    from gatepass.transport.http_server import create_http_app

    try:
        import uvicorn
    except ImportError as exc:
        raise RuntimeError("uvicorn is required to serve the HTTP API") from exc

    logger.info("Initializing gate pass service v%s", __version__)
    logger.info("Storage backend: %s", settings.storage.backend)
    logger.info("Directory file: %s", settings.directory.path)

    app = create_http_app()
    uvicorn.run(
        app,
        host=settings.server.host,
        port=settings.server.port,
        ws="none",
        log_config=None,
    )


if __name__ == "__main__":  # pragma: no cover
    run_entrypoint()
