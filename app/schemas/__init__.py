"""Public schema exports."""

from .application import (
    EmailAttachmentPayload,
    OptimizationRequest,
    OptimizationResult,
    SendEmailRequest,
    SendEmailResult,
)
from .auth import ConnectionStatus, OAuthCallbackPayload, TokenHandoffPayload

__all__ = [
    "ConnectionStatus",
    "EmailAttachmentPayload",
    "OAuthCallbackPayload",
    "OptimizationRequest",
    "OptimizationResult",
    "SendEmailRequest",
    "SendEmailResult",
    "TokenHandoffPayload",
]
