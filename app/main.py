"""
FastAPI application entrypoint for the CV mailer backend.
"""

from __future__ import annotations

from fastapi import FastAPI

from app.api.routes import router as api_router
from app.core.config import get_settings
from app.core.logging import configure_logging
from app.dependencies import get_token_cipher_service


def create_app() -> FastAPI:
    """Factory for the FastAPI application.

    Settings and the token cipher are built here so a missing or malformed
    encryption key stops the process before it serves any request.
    """
    settings = get_settings()
    configure_logging(settings.log_level)
    get_token_cipher_service()

    app = FastAPI(
        title="CV Mailer",
        version="0.1.0",
        description="Gmail connection, credential lifecycle and CV dispatch API.",
    )
    app.include_router(api_router, prefix="/api")
    return app


app = create_app()

__all__ = ["app", "create_app"]
