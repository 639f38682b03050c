"""Service layer exports."""

from .google_tokens import (
    CorruptCredentialError,
    CredentialError,
    GoogleTokenService,
    NotConnectedError,
    ReauthRequiredError,
)
from .token_cipher import TokenCipherService, TokenIntegrityError

__all__ = [
    "CorruptCredentialError",
    "CredentialError",
    "GoogleTokenService",
    "NotConnectedError",
    "ReauthRequiredError",
    "TokenCipherService",
    "TokenIntegrityError",
]
