"""
Domain models for OAuth credential persistence.
"""

from datetime import datetime

from pydantic import BaseModel, Field


class CredentialRecord(BaseModel):
    """One user's stored Google credential. Token fields hold ciphertext only."""

    user_id: str = Field(..., description="Stable identifier of the account owner.")
    access_token_ciphertext: str
    refresh_token_ciphertext: str
    expires_at: datetime = Field(
        ..., description="Instant after which the stored access token must be refreshed."
    )
    created_at: datetime
    updated_at: datetime


__all__ = ["CredentialRecord"]
