"""
FastAPI application entrypoint for the AmoCRM integration.
"""

from __future__ import annotations

from fastapi import FastAPI

from amolink.api.routes import router as api_router
from amolink.core.config import get_settings
from amolink.core.logging import configure_logging


def create_app() -> FastAPI:
    """Factory for the FastAPI application."""
    settings = get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(
        title="amolink",
        version="0.1.0",
        description="AmoCRM OAuth token management and lead lookups.",
    )
    app.include_router(api_router, prefix="/api")
    return app


app = create_app()

__all__ = ["app", "create_app"]
