"""Gmail client wrapper for sending mail on a user's behalf."""

from __future__ import annotations

import asyncio
import base64
import logging
import mimetypes
from dataclasses import dataclass
from email.message import EmailMessage
from typing import Iterable, Optional, TYPE_CHECKING

from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

if TYPE_CHECKING:  # pragma: no cover - type hints only
    from google.oauth2.credentials import Credentials

    from app.services.google_tokens import GoogleTokenService

logger = logging.getLogger(__name__)


class GmailSendError(Exception):
    """Raised when Gmail refuses or fails to send a message."""


@dataclass(frozen=True)
class EmailAttachment:
    filename: str
    content: bytes
    mime_type: Optional[str] = None


@dataclass(frozen=True)
class SentMessage:
    message_id: str
    thread_id: Optional[str]


def build_raw_message(
    *,
    to: str,
    subject: str,
    body: str,
    attachments: Iterable[EmailAttachment] = (),
) -> str:
    """Render an RFC 5322 message and encode it the way Gmail's ``raw`` field expects."""
    message = EmailMessage()
    message["To"] = to
    message["Subject"] = subject
    message.set_content(body)

    for attachment in attachments:
        mime_type = (
            attachment.mime_type
            or mimetypes.guess_type(attachment.filename)[0]
            or "application/octet-stream"
        )
        maintype, _, subtype = mime_type.partition("/")
        message.add_attachment(
            attachment.content,
            maintype=maintype,
            subtype=subtype or "octet-stream",
            filename=attachment.filename,
        )

    return base64.urlsafe_b64encode(message.as_bytes()).decode("ascii").rstrip("=")


class GmailClient:
    """Send messages through the Gmail API using credentials from the token service."""

    def __init__(self, token_service: "GoogleTokenService") -> None:
        self._token_service = token_service

    async def send_email(
        self,
        *,
        user_id: str,
        to: str,
        subject: str,
        body: str,
        attachments: Iterable[EmailAttachment] = (),
    ) -> SentMessage:
        """Send a message from the user's mailbox.

        A 401 from Gmail means the token we were handed has already been
        superseded; the send is retried once with a forced refresh, unless
        another caller has already stored a replacement for that token.
        """
        raw = build_raw_message(
            to=to, subject=subject, body=body, attachments=list(attachments)
        )
        credentials = await self._token_service.get_credentials(user_id=user_id)

        try:
            return await asyncio.to_thread(self._execute_send, credentials, raw)
        except HttpError as exc:
            if exc.resp.status != 401:
                raise GmailSendError(_describe(exc)) from exc
            logger.info("Gmail rejected access token for user %s; retrying once", user_id)

        await self._token_service.get_valid_access_token(
            user_id=user_id, force_refresh=True, rejected_token=credentials.token
        )
        credentials = await self._token_service.get_credentials(user_id=user_id)
        try:
            return await asyncio.to_thread(self._execute_send, credentials, raw)
        except HttpError as exc:
            raise GmailSendError(_describe(exc)) from exc

    @staticmethod
    def _execute_send(credentials: "Credentials", raw: str) -> SentMessage:
        service = build("gmail", "v1", credentials=credentials, cache_discovery=False)
        result = (
            service.users()
            .messages()
            .send(userId="me", body={"raw": raw})
            .execute()
        )
        return SentMessage(message_id=result["id"], thread_id=result.get("threadId"))


def _describe(exc: HttpError) -> str:
    reason = getattr(exc, "reason", None) or exc.resp.reason
    return f"Gmail API error {exc.resp.status}: {reason}"


__all__ = [
    "EmailAttachment",
    "GmailClient",
    "GmailSendError",
    "SentMessage",
    "build_raw_message",
]
