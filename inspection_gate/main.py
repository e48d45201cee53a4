"""FastAPI application entrypoint for the inspection workflow gate."""

import logging
import sys

import uvicorn
from fastapi import FastAPI

from inspection_gate.api.dependencies import get_event_bus, get_settings
from inspection_gate.api.routes import router
from inspection_gate.services.events import register_audit_log_subscriber

settings = get_settings()

logging.basicConfig(
    level=getattr(logging, settings.log_level, logging.INFO),
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    stream=sys.stdout,
)

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Inspection Workflow Gate",
    description="Phase gating, data-quality gates and export readiness for field inspections.",
    version="0.1.0",
)

app.include_router(router)

register_audit_log_subscriber(get_event_bus())


def main() -> None:
    """Launch the Uvicorn server with configuration from environment variables."""
    logger.info("Starting server on port %d", settings.port)
    uvicorn.run(
        "inspection_gate.main:app",
        host="0.0.0.0",
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
