"""Schemas for CV optimization requests and outbound email."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class OptimizationRequest(BaseModel):
    """Ask the AI backend to tailor a stored CV to a job description."""

    user_id: str = Field(..., min_length=1)
    user_email: str = Field(..., description="Address the tailored CV is sent from.")
    cv_file_path: str = Field(..., description="Storage path of the uploaded CV.")
    job_input: str = Field(..., min_length=1, description="Job description text or URL.")


class OptimizationResult(BaseModel):
    """Outcome reported by the AI backend."""

    match_score: float
    pdf_url: str = Field(..., description="Storage path of the generated PDF.")
    email_sent: bool


class EmailAttachmentPayload(BaseModel):
    """File attached to an outgoing email."""

    filename: str = Field(..., min_length=1, description="File name including extension.")
    mime_type: Optional[str] = Field(
        None, description="MIME type; guessed from the file name when omitted."
    )
    file_b64: str = Field(..., description="Base64-encoded file contents.")


class SendEmailRequest(BaseModel):
    """Send a plain-text email from the user's Gmail account."""

    user_id: str = Field(..., min_length=1)
    to: str = Field(..., min_length=3)
    subject: str = Field(..., min_length=1)
    body: str = Field(..., min_length=1)
    company_name: Optional[str] = None
    job_title: Optional[str] = None
    attachments: list[EmailAttachmentPayload] = Field(default_factory=list)


class SendEmailResult(BaseModel):
    message_id: str
    thread_id: Optional[str] = None


__all__ = [
    "EmailAttachmentPayload",
    "OptimizationRequest",
    "OptimizationResult",
    "SendEmailRequest",
    "SendEmailResult",
]
