"""
Lifecycle management for per-user Google OAuth credentials.

:class:`GoogleTokenService` is the single path through which consumers obtain
a usable access token. Reads may write: when the stored token is inside the
refresh margin, the service refreshes it with Google and persists the result
before returning.
"""

from __future__ import annotations

import asyncio
import logging
import weakref
from datetime import datetime, timedelta, timezone
from typing import Optional

from google.oauth2.credentials import Credentials

from app.clients.credential_store import SQLiteCredentialStore
from app.clients.google_auth import (
    GoogleOAuthClient,
    ProviderUnavailableError,
    RefreshRejectedError,
    TokenRejectedError,
)
from app.core.config import OAuthSettings
from app.models.oauth import CredentialRecord
from app.schemas.auth import ConnectionStatus
from app.services.token_cipher import TokenCipherService, TokenIntegrityError

logger = logging.getLogger(__name__)


class CredentialError(Exception):
    """Base class for credential failures the user has to act on."""

    error_code = "credential_error"
    user_action = "contact_support"


class NotConnectedError(CredentialError):
    """No credential is stored for the user."""

    error_code = "google_not_connected"
    user_action = "connect"


class CorruptCredentialError(CredentialError):
    """Stored ciphertext failed integrity verification."""

    error_code = "credential_corrupt"
    user_action = "contact_support"


class ReauthRequiredError(CredentialError):
    """Google rejected the stored refresh token."""

    error_code = "google_reauth_required"
    user_action = "reconnect"


class GoogleTokenService:
    """Manages access to persisted Google OAuth tokens."""

    def __init__(
        self,
        store: SQLiteCredentialStore,
        oauth_client: GoogleOAuthClient,
        oauth_settings: OAuthSettings,
        token_cipher: TokenCipherService,
    ) -> None:
        self._store = store
        self._oauth = oauth_client
        self._oauth_settings = oauth_settings
        self._cipher = token_cipher
        self._refresh_margin = timedelta(seconds=oauth_settings.refresh_margin_seconds)
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    async def get_valid_access_token(
        self,
        *,
        user_id: str,
        force_refresh: bool = False,
        rejected_token: Optional[str] = None,
    ) -> str:
        """Return a plaintext access token that is valid beyond the refresh margin.

        Refreshes through Google when the stored token is close to or past
        expiry and persists the refreshed credential. ``force_refresh`` is for
        callers whose token was just rejected upstream; passing that token as
        ``rejected_token`` lets the service hand back a replacement another
        caller already stored instead of refreshing again.
        """
        record = self._load_record(user_id)
        self._decrypt(record.refresh_token_ciphertext, user_id=user_id)

        if not force_refresh and not self._needs_refresh(record):
            logger.debug("Serving stored Google access token for user %s", user_id)
            return self._decrypt(record.access_token_ciphertext, user_id=user_id)

        return await self._refresh(
            user_id=user_id,
            observed=record,
            force=force_refresh,
            rejected_token=rejected_token,
        )

    async def get_credentials(self, *, user_id: str) -> Credentials:
        """Wrap a valid access token for use with Google API client libraries.

        No refresh token is attached, so the client library never refreshes
        behind this service's back.
        """
        access_token = await self.get_valid_access_token(user_id=user_id)
        return Credentials(token=access_token, scopes=list(self._oauth_settings.scopes))

    async def check_connection_status(self, *, user_id: str) -> ConnectionStatus:
        """Report whether the user's credential is fresh and carries the send scope."""
        try:
            access_token = await self.get_valid_access_token(user_id=user_id)
            try:
                info = await self._oauth.introspect(access_token)
            except TokenRejectedError:
                # A concurrent refresh may have superseded our token; retry once.
                access_token = await self.get_valid_access_token(
                    user_id=user_id, force_refresh=True, rejected_token=access_token
                )
                info = await self._oauth.introspect(access_token)
        except CredentialError as exc:
            return ConnectionStatus(
                valid=False, error=exc.error_code, action=exc.user_action
            )
        except TokenRejectedError:
            logger.warning("Google rejected a freshly issued token for user %s", user_id)
            return ConnectionStatus(valid=False, error="token_rejected", action="reconnect")

        required_scope = self._oauth_settings.required_scope
        if required_scope not in info.scopes:
            logger.info("User %s token lacks scope %s", user_id, required_scope)
            return ConnectionStatus(
                valid=False,
                email=info.email,
                expires_in=info.expires_in,
                error="missing_scope",
                action="reconnect",
            )

        return ConnectionStatus(valid=True, email=info.email, expires_in=info.expires_in)

    def store_tokens(
        self,
        *,
        user_id: str,
        access_token: str,
        refresh_token: str,
        expires_at: datetime,
    ) -> CredentialRecord:
        """Seed or replace a user's credential after a completed consent flow."""
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        record = self._store.upsert(
            user_id,
            self._cipher.encrypt(access_token),
            self._cipher.encrypt(refresh_token),
            expires_at,
        )
        logger.info("Stored Google credential for user %s", user_id)
        return record

    def disconnect(self, *, user_id: str) -> None:
        """Forget the user's credential. Disconnecting twice is not an error."""
        removed = self._store.delete(user_id)
        if removed:
            logger.info("Disconnected Google account for user %s", user_id)
        else:
            logger.debug("Disconnect for user %s found no stored credential", user_id)

    async def _refresh(
        self,
        *,
        user_id: str,
        observed: CredentialRecord,
        force: bool,
        rejected_token: Optional[str],
    ) -> str:
        lock = self._lock_for(user_id)
        async with lock:
            record = self._load_record(user_id)
            replaced = record.access_token_ciphertext != observed.access_token_ciphertext
            if not replaced and rejected_token is not None:
                current = self._decrypt(record.access_token_ciphertext, user_id=user_id)
                replaced = current != rejected_token
            if (replaced or not force) and not self._needs_refresh(record):
                logger.debug("Reusing token refreshed concurrently for user %s", user_id)
                return self._decrypt(record.access_token_ciphertext, user_id=user_id)

            refresh_token = self._decrypt(record.refresh_token_ciphertext, user_id=user_id)
            refreshed_at = datetime.now(timezone.utc)
            try:
                refreshed = await self._oauth.refresh_token(refresh_token)
            except RefreshRejectedError as exc:
                logger.warning(
                    "Google rejected the refresh token for user %s (%s)", user_id, exc
                )
                raise ReauthRequiredError(
                    f"Google refresh token for user {user_id} was rejected."
                ) from exc
            except ProviderUnavailableError as exc:
                logger.warning("Token refresh for user %s failed transiently: %s", user_id, exc)
                raise

            lifetime = (
                refreshed.expires_in
                or self._oauth_settings.default_token_lifetime_seconds
            )
            expires_at = refreshed_at + timedelta(seconds=lifetime)
            if refreshed.refresh_token:
                refresh_ciphertext = self._cipher.encrypt(refreshed.refresh_token)
            else:
                refresh_ciphertext = record.refresh_token_ciphertext

            self._store.upsert(
                user_id,
                self._cipher.encrypt(refreshed.access_token),
                refresh_ciphertext,
                expires_at,
            )
            logger.info(
                "Refreshed Google access token for user %s (valid until %s, rotated=%s)",
                user_id,
                expires_at.isoformat(),
                bool(refreshed.refresh_token),
            )
            return refreshed.access_token

    def _lock_for(self, user_id: str) -> asyncio.Lock:
        lock = self._locks.get(user_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[user_id] = lock
        return lock

    def _load_record(self, user_id: str) -> CredentialRecord:
        record = self._store.load(user_id)
        if record is None:
            raise NotConnectedError(f"No Google credential stored for user {user_id}.")
        return record

    def _needs_refresh(self, record: CredentialRecord) -> bool:
        expires_at = record.expires_at
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        return expires_at <= datetime.now(timezone.utc) + self._refresh_margin

    def _decrypt(self, ciphertext: str, *, user_id: str) -> str:
        try:
            return self._cipher.decrypt(ciphertext)
        except TokenIntegrityError as exc:
            logger.error(
                "Stored Google credential for user %s failed integrity check; "
                "possible key mismatch or storage corruption",
                user_id,
            )
            raise CorruptCredentialError(
                f"Stored credential for user {user_id} could not be decrypted."
            ) from exc


__all__ = [
    "CorruptCredentialError",
    "CredentialError",
    "GoogleTokenService",
    "NotConnectedError",
    "ReauthRequiredError",
]
