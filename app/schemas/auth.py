"""Schemas related to OAuth flows and Google connection state."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class OAuthCallbackPayload(BaseModel):
    """Payload sent to complete the OAuth callback exchange."""

    code: str = Field(..., description="Authorization code returned by Google OAuth.")
    state: str = Field(..., description="Opaque state token issued when starting OAuth.")


class TokenHandoffPayload(BaseModel):
    """Token pair obtained by an external consent flow, handed over for storage."""

    user_id: str = Field(..., min_length=1)
    access_token: str = Field(..., min_length=1)
    refresh_token: str = Field(..., min_length=1)
    expires_at: datetime


class ConnectionStatus(BaseModel):
    """Whether a user's Google credential can currently send mail."""

    valid: bool
    email: Optional[str] = None
    expires_in: Optional[int] = Field(
        None, description="Seconds of validity left on the current access token."
    )
    error: Optional[str] = None
    action: Optional[str] = Field(
        None, description="What the user should do next: connect, reconnect, contact_support."
    )


__all__ = ["ConnectionStatus", "OAuthCallbackPayload", "TokenHandoffPayload"]
