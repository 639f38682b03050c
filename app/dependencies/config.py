"""
FastAPI dependencies exposing configuration to route handlers.
"""

from fastapi import Depends

from app.core.config import AppSettings, OAuthSettings, get_settings


def get_app_settings() -> AppSettings:
    """FastAPI dependency returning the cached application settings."""
    return get_settings()


def get_oauth_settings(
    settings: AppSettings = Depends(get_app_settings),
) -> OAuthSettings:
    """OAuth settings, resolved through ``get_app_settings`` so test overrides apply."""
    return settings.oauth


__all__ = ["get_app_settings", "get_oauth_settings"]
