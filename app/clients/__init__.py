"""Expose constructed client wrappers."""

from .credential_store import SQLiteCredentialStore, StoreUnavailableError
from .email_log import SQLiteEmailLog
from .gmail import GmailClient
from .google_auth import GoogleOAuthClient, OAuthStateEncoder
from .optimizer import OptimizerClient

__all__ = [
    "GmailClient",
    "GoogleOAuthClient",
    "OAuthStateEncoder",
    "OptimizerClient",
    "SQLiteCredentialStore",
    "SQLiteEmailLog",
    "StoreUnavailableError",
]
