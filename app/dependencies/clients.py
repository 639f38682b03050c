"""
Factory functions to provide shared clients and services as FastAPI dependencies.
"""

from functools import lru_cache

from app.clients import (
    GmailClient,
    GoogleOAuthClient,
    OAuthStateEncoder,
    OptimizerClient,
    SQLiteCredentialStore,
    SQLiteEmailLog,
)
from app.core.config import get_settings
from app.services import GoogleTokenService, TokenCipherService


@lru_cache()
def _settings():
    """Internal helper to cache settings for client factories."""
    return get_settings()


@lru_cache()
def get_oauth_state_encoder() -> OAuthStateEncoder:
    """Provide an OAuth state encoder derived from the Google client secret."""
    settings = _settings()
    return OAuthStateEncoder(secret_key=settings.google.client_secret)


@lru_cache()
def get_google_oauth_client() -> GoogleOAuthClient:
    """Create a singleton Google OAuth client."""
    settings = _settings()
    return GoogleOAuthClient(settings.google, settings.oauth)


@lru_cache()
def get_credential_store() -> SQLiteCredentialStore:
    """Provide the shared credential store."""
    settings = _settings()
    return SQLiteCredentialStore(settings.storage.db_path)


@lru_cache()
def get_email_log() -> SQLiteEmailLog:
    """Provide the sent-email history store."""
    settings = _settings()
    return SQLiteEmailLog(settings.storage.db_path)


@lru_cache()
def get_token_cipher_service() -> TokenCipherService:
    """Provide symmetric encryption helper for token storage."""
    settings = _settings()
    return TokenCipherService.from_base64(settings.security.token_encryption_key)


@lru_cache()
def get_google_token_service() -> GoogleTokenService:
    """Provide the token lifecycle manager; one instance shares the per-user locks."""
    settings = _settings()
    return GoogleTokenService(
        store=get_credential_store(),
        oauth_client=get_google_oauth_client(),
        oauth_settings=settings.oauth,
        token_cipher=get_token_cipher_service(),
    )


@lru_cache()
def get_gmail_client() -> GmailClient:
    """Provide Gmail client instance."""
    return GmailClient(get_google_token_service())


@lru_cache()
def get_optimizer_client() -> OptimizerClient:
    """Provide the AI optimization backend client."""
    settings = _settings()
    return OptimizerClient(settings.optimizer)


__all__ = [
    "get_credential_store",
    "get_email_log",
    "get_gmail_client",
    "get_google_oauth_client",
    "get_google_token_service",
    "get_oauth_state_encoder",
    "get_optimizer_client",
    "get_token_cipher_service",
]
