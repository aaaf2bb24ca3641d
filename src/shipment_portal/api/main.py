"""Shipment portal API entry point.

This module provides the application instance for ASGI servers (uvicorn)
and a run() function for direct execution.
"""

import logging

from shipment_portal.api import create_app
from shipment_portal.api.middleware import RequestIDLogFilter
from shipment_portal.core.settings import get_settings

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s [%(request_id)s] %(name)s: %(message)s"

# What uvicorn references: shipment_portal.api.main:app
app = create_app()


def configure_logging(level: str) -> None:
    """Configure root logging with the request ID on every line."""
    logging.basicConfig(level=level, format=LOG_FORMAT)
    for handler in logging.getLogger().handlers:
        handler.addFilter(RequestIDLogFilter())


def run() -> None:
    """Run the API server using uvicorn.

    Called by the ``shipment-portal-api`` console script.
    """
    import uvicorn

    settings = get_settings()
    configure_logging(settings.log_level)

    logger.info("Starting shipment portal API on %s:%d", settings.api_host, settings.api_port)

    uvicorn.run(
        "shipment_portal.api.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.is_development and settings.debug,
        log_config=None,
    )


if __name__ == "__main__":
    run()
