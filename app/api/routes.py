"""
FastAPI routes for connecting Gmail, sending mail and requesting CV optimization.
"""

from __future__ import annotations

import base64
import binascii
import logging
import uuid
from datetime import datetime, timedelta, timezone
from http import HTTPStatus
from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response
from fastapi.responses import JSONResponse, RedirectResponse

from app.clients.credential_store import StoreUnavailableError
from app.clients.gmail import EmailAttachment, GmailSendError
from app.clients.google_auth import OAuthTokenExchangeError, ProviderUnavailableError
from app.clients.optimizer import OptimizerError
from app.dependencies import (
    get_app_settings,
    get_email_log,
    get_gmail_client,
    get_google_oauth_client,
    get_google_token_service,
    get_oauth_settings,
    get_oauth_state_encoder,
    get_optimizer_client,
)
from app.schemas import (
    ConnectionStatus,
    EmailAttachmentPayload,
    OAuthCallbackPayload,
    OptimizationRequest,
    OptimizationResult,
    SendEmailRequest,
    SendEmailResult,
    TokenHandoffPayload,
)
from app.services.google_tokens import CorruptCredentialError, CredentialError

router = APIRouter()
logger = logging.getLogger(__name__)

_TRANSIENT_ERRORS = (ProviderUnavailableError, StoreUnavailableError)

_CREDENTIAL_MESSAGES = {
    "connect": "Google account not connected.",
    "reconnect": "Google access expired or was revoked. Reconnect your account.",
    "contact_support": "Stored Google credential is unreadable. Contact support.",
}


def _credential_http_error(exc: CredentialError) -> HTTPException:
    """Translate a credential failure into the matching user instruction."""
    status_code = (
        HTTPStatus.CONFLICT
        if isinstance(exc, CorruptCredentialError)
        else HTTPStatus.UNAUTHORIZED
    )
    return HTTPException(
        status_code=status_code,
        detail={
            "error": exc.error_code,
            "action": exc.user_action,
            "message": _CREDENTIAL_MESSAGES.get(exc.user_action, str(exc)),
        },
    )


def _transient_http_error(exc: Exception) -> HTTPException:
    logger.warning("Transient dependency failure: %s", exc)
    return HTTPException(
        status_code=HTTPStatus.SERVICE_UNAVAILABLE,
        detail={
            "error": "temporarily_unavailable",
            "action": "retry",
            "message": "Try again shortly.",
        },
    )


@router.get("/health", status_code=HTTPStatus.OK)
async def healthcheck() -> dict:
    """Simple health endpoint for monitoring."""
    return {"status": "ok"}


@router.get("/auth/google/authorize", status_code=HTTPStatus.OK)
async def start_google_oauth_flow(
    request: Request,
    oauth_client: Annotated[Any, Depends(get_google_oauth_client)],
    state_encoder: Annotated[Any, Depends(get_oauth_state_encoder)],
    user_id: str = Query(..., description="User identifier initiating authentication."),
    redirect_to: str | None = Query(
        default=None,
        description="Optional URL to redirect back to on successful authentication.",
    ),
    redirect: bool = Query(
        default=False,
        description="When true, respond with a redirect to the Google consent screen.",
    ),
) -> Any:
    """
    Kick off the OAuth flow by generating a state token and authorization URL.
    """
    state_payload = {
        "nonce": uuid.uuid4().hex,
        "redirect_to": redirect_to,
        "user_id": user_id,
        "issued_at": datetime.now(timezone.utc).isoformat(),
    }
    state = state_encoder.encode(state_payload)
    authorization_url = oauth_client.build_authorization_url(state=state)

    accept_header = request.headers.get("accept", "")
    wants_html = "text/html" in accept_header.lower()
    if redirect or wants_html:
        return RedirectResponse(url=authorization_url, status_code=HTTPStatus.TEMPORARY_REDIRECT)

    return {"authorization_url": authorization_url, "state": state}


@router.post("/auth/google/callback", status_code=HTTPStatus.OK)
async def handle_google_oauth_callback(
    payload: OAuthCallbackPayload,
    oauth_client: Annotated[Any, Depends(get_google_oauth_client)],
    state_encoder: Annotated[Any, Depends(get_oauth_state_encoder)],
    token_service: Annotated[Any, Depends(get_google_token_service)],
    oauth_settings: Annotated[Any, Depends(get_oauth_settings)],
) -> dict:
    """Complete the OAuth exchange, store the credential, and return redirect metadata."""
    state_data = state_encoder.decode(payload.state)

    issued_at_raw = state_data.get("issued_at")
    if not issued_at_raw:
        raise HTTPException(
            status_code=HTTPStatus.BAD_REQUEST,
            detail="Missing issued_at in state token.",
        )

    try:
        issued_at = datetime.fromisoformat(issued_at_raw)
    except ValueError as exc:
        raise HTTPException(
            status_code=HTTPStatus.BAD_REQUEST,
            detail="Invalid issued_at in state token.",
        ) from exc

    if issued_at.tzinfo is None:
        issued_at = issued_at.replace(tzinfo=timezone.utc)

    now = datetime.now(timezone.utc)
    if now - issued_at > timedelta(seconds=oauth_settings.state_ttl_seconds):
        raise HTTPException(
            status_code=HTTPStatus.BAD_REQUEST, detail="OAuth state token has expired."
        )

    user_id = state_data.get("user_id")
    if not user_id:
        raise HTTPException(
            status_code=HTTPStatus.BAD_REQUEST,
            detail="Missing user identifier in state token.",
        )

    try:
        (
            access_token,
            refresh_token,
            expires_in,
        ) = await oauth_client.exchange_authorization_code(payload.code)
    except OAuthTokenExchangeError as exc:
        logger.warning("Authorization code exchange failed for user %s: %s", user_id, exc)
        raise HTTPException(
            status_code=HTTPStatus.BAD_REQUEST,
            detail="Failed to exchange authorization code.",
        ) from exc

    try:
        token_service.store_tokens(
            user_id=user_id,
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=now + timedelta(seconds=expires_in),
        )
    except StoreUnavailableError as exc:
        raise _transient_http_error(exc) from exc

    return {
        "status": "connected",
        "redirect_to": state_data.get("redirect_to"),
    }


@router.get("/auth/google/callback", status_code=HTTPStatus.OK)
async def handle_google_oauth_callback_get(
    request: Request,
    oauth_client: Annotated[Any, Depends(get_google_oauth_client)],
    state_encoder: Annotated[Any, Depends(get_oauth_state_encoder)],
    token_service: Annotated[Any, Depends(get_google_token_service)],
    oauth_settings: Annotated[Any, Depends(get_oauth_settings)],
    settings: Annotated[Any, Depends(get_app_settings)],
    state: str = Query(..., description="OAuth state token."),
    code: str = Query(..., description="Authorization code returned by Google."),
    redirect: bool = Query(
        default=False,
        description="When true, redirect browser clients instead of returning JSON.",
    ),
) -> Response:
    payload = OAuthCallbackPayload(state=state, code=code)
    result = await handle_google_oauth_callback(
        payload=payload,
        oauth_client=oauth_client,
        state_encoder=state_encoder,
        token_service=token_service,
        oauth_settings=oauth_settings,
    )

    accept_header = request.headers.get("accept", "")
    wants_html = "text/html" in accept_header.lower()
    redirect_target = result.get("redirect_to") or settings.frontend_base_url

    if redirect_target and (redirect or wants_html):
        return RedirectResponse(url=str(redirect_target), status_code=HTTPStatus.TEMPORARY_REDIRECT)

    return JSONResponse(content=result)


@router.post("/auth/google/tokens", status_code=HTTPStatus.OK)
async def store_google_tokens(
    payload: TokenHandoffPayload,
    token_service: Annotated[Any, Depends(get_google_token_service)],
) -> dict:
    """Accept a token pair obtained by an external sign-in flow and store it encrypted."""
    try:
        token_service.store_tokens(
            user_id=payload.user_id,
            access_token=payload.access_token,
            refresh_token=payload.refresh_token,
            expires_at=payload.expires_at,
        )
    except StoreUnavailableError as exc:
        raise _transient_http_error(exc) from exc
    return {"status": "connected"}


@router.delete("/auth/google", status_code=HTTPStatus.OK)
async def disconnect_google(
    token_service: Annotated[Any, Depends(get_google_token_service)],
    user_id: str = Query(..., description="User whose Google access should be removed."),
) -> dict:
    """Remove the stored credential. Repeating the call is harmless."""
    try:
        token_service.disconnect(user_id=user_id)
    except StoreUnavailableError as exc:
        raise _transient_http_error(exc) from exc
    return {"status": "disconnected"}


@router.get("/gmail/status", response_model=ConnectionStatus)
async def gmail_connection_status(
    token_service: Annotated[Any, Depends(get_google_token_service)],
    user_id: str = Query(..., description="User whose Gmail connection is checked."),
) -> ConnectionStatus:
    """Report whether the user's Gmail credential is usable for sending."""
    try:
        return await token_service.check_connection_status(user_id=user_id)
    except _TRANSIENT_ERRORS as exc:
        raise _transient_http_error(exc) from exc


_MAX_ATTACHMENT_BYTES = 20 * 1024 * 1024


def _decode_attachments(attachments: list[EmailAttachmentPayload]) -> list[EmailAttachment]:
    decoded = []
    for attachment in attachments:
        try:
            content = base64.b64decode(attachment.file_b64, validate=True)
        except (ValueError, binascii.Error) as exc:
            raise HTTPException(
                status_code=HTTPStatus.BAD_REQUEST,
                detail=f"Attachment {attachment.filename} is not valid base64.",
            ) from exc
        if len(content) > _MAX_ATTACHMENT_BYTES:
            raise HTTPException(
                status_code=HTTPStatus.BAD_REQUEST,
                detail=(
                    f"Attachment {attachment.filename} exceeds "
                    f"{_MAX_ATTACHMENT_BYTES // (1024 * 1024)}MB limit."
                ),
            )
        decoded.append(
            EmailAttachment(
                filename=attachment.filename,
                content=content,
                mime_type=attachment.mime_type,
            )
        )
    return decoded


def _record_send_attempt(email_log: Any, payload: SendEmailRequest, **fields: Any) -> None:
    """Write a history row; a history outage never changes the send response."""
    try:
        email_log.record(
            user_id=payload.user_id,
            company_name=payload.company_name or payload.to,
            company_email=payload.to,
            job_title=payload.job_title,
            **fields,
        )
    except StoreUnavailableError as exc:
        logger.error(
            "Could not record %s email for user %s: %s",
            fields.get("status"),
            payload.user_id,
            exc,
        )


@router.post("/gmail/send", response_model=SendEmailResult)
async def send_gmail_message(
    payload: SendEmailRequest,
    gmail_client: Annotated[Any, Depends(get_gmail_client)],
    email_log: Annotated[Any, Depends(get_email_log)],
) -> SendEmailResult:
    """Send an email from the user's Gmail account and record the attempt."""
    attachments = _decode_attachments(payload.attachments)
    try:
        sent = await gmail_client.send_email(
            user_id=payload.user_id,
            to=payload.to,
            subject=payload.subject,
            body=payload.body,
            attachments=attachments,
        )
    except CredentialError as exc:
        _record_send_attempt(
            email_log, payload, status="failed", error_message=exc.error_code
        )
        raise _credential_http_error(exc) from exc
    except _TRANSIENT_ERRORS as exc:
        _record_send_attempt(email_log, payload, status="failed", error_message=str(exc))
        raise _transient_http_error(exc) from exc
    except GmailSendError as exc:
        logger.warning("Gmail send failed for user %s: %s", payload.user_id, exc)
        _record_send_attempt(email_log, payload, status="failed", error_message=str(exc))
        raise HTTPException(
            status_code=HTTPStatus.BAD_GATEWAY,
            detail={"error": "gmail_send_failed", "message": str(exc)},
        ) from exc

    _record_send_attempt(email_log, payload, status="sent", message_id=sent.message_id)
    return SendEmailResult(message_id=sent.message_id, thread_id=sent.thread_id)


@router.get("/gmail/history", status_code=HTTPStatus.OK)
async def gmail_send_history(
    email_log: Annotated[Any, Depends(get_email_log)],
    user_id: str = Query(..., description="User whose sent emails are listed."),
    limit: int = Query(default=50, ge=1, le=200),
) -> dict:
    """List the user's most recent send attempts."""
    try:
        items = email_log.list_for_user(user_id, limit=limit)
    except StoreUnavailableError as exc:
        raise _transient_http_error(exc) from exc
    return {"items": items}


@router.post("/applications/optimize", response_model=OptimizationResult)
async def optimize_application(
    payload: OptimizationRequest,
    token_service: Annotated[Any, Depends(get_google_token_service)],
    optimizer: Annotated[Any, Depends(get_optimizer_client)],
) -> OptimizationResult:
    """Have the AI backend tailor the CV and mail it, once Gmail access is confirmed."""
    try:
        await token_service.get_valid_access_token(user_id=payload.user_id)
    except CredentialError as exc:
        raise _credential_http_error(exc) from exc
    except _TRANSIENT_ERRORS as exc:
        raise _transient_http_error(exc) from exc

    try:
        return await optimizer.optimize(
            user_id=payload.user_id,
            user_email=payload.user_email,
            cv_file_path=payload.cv_file_path,
            job_input=payload.job_input,
        )
    except OptimizerError as exc:
        logger.warning("Optimization failed for user %s: %s", payload.user_id, exc)
        raise HTTPException(
            status_code=HTTPStatus.BAD_GATEWAY,
            detail={"error": "optimization_failed", "message": "AI optimization failed."},
        ) from exc


__all__ = ["router"]
