"""Expose dependency helpers for FastAPI routers."""

from .clients import (
    get_credential_store,
    get_email_log,
    get_gmail_client,
    get_google_oauth_client,
    get_google_token_service,
    get_oauth_state_encoder,
    get_optimizer_client,
    get_token_cipher_service,
)
from .config import get_app_settings, get_oauth_settings

__all__ = [
    "get_app_settings",
    "get_credential_store",
    "get_email_log",
    "get_gmail_client",
    "get_google_oauth_client",
    "get_google_token_service",
    "get_oauth_settings",
    "get_oauth_state_encoder",
    "get_optimizer_client",
    "get_token_cipher_service",
]
