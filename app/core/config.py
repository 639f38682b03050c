"""
Application configuration models and helpers.

Centralizes settings management so the FastAPI app, the token lifecycle
service and the operational scripts share a consistent configuration surface.
"""

import base64
import binascii
import os
from functools import lru_cache
from pathlib import Path
from typing import Annotated, Optional

from pydantic import AnyHttpUrl, Field, HttpUrl, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

ENCRYPTION_KEY_BYTES = 32


def _load_env_file(path: str = ".env") -> None:
    """Best-effort load key=value pairs from a .env file without extra deps."""
    env_path = Path(path)
    if not env_path.exists():
        return
    for raw_line in env_path.read_text().splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        key, sep, value = line.partition("=")
        if not sep:
            continue
        key = key.strip()
        if not key or key in os.environ:
            continue
        cleaned = value.strip().strip('"').strip("'")
        os.environ[key] = cleaned


_load_env_file()

_SETTINGS_CONFIG = SettingsConfigDict(populate_by_name=True, extra="ignore")


class GoogleSettings(BaseSettings):
    """Configuration required for interacting with Google APIs."""

    model_config = _SETTINGS_CONFIG

    client_id: str = Field(..., validation_alias="GOOGLE_CLIENT_ID")
    client_secret: str = Field(..., validation_alias="GOOGLE_CLIENT_SECRET")
    redirect_uri: AnyHttpUrl = Field(..., validation_alias="GOOGLE_REDIRECT_URI")


class SecuritySettings(BaseSettings):
    """Security-related configuration."""

    model_config = _SETTINGS_CONFIG

    token_encryption_key: str = Field(
        ...,
        validation_alias="TOKEN_ENCRYPTION_KEY",
        description="Base64 encoded 256-bit key used to encrypt stored tokens.",
    )

    @field_validator("token_encryption_key")
    @classmethod
    def _check_key_length(cls, value: str) -> str:
        """Reject keys that do not decode to exactly 32 bytes."""
        try:
            raw = base64.b64decode(value.strip(), validate=True)
        except (binascii.Error, ValueError) as exc:
            raise ValueError("TOKEN_ENCRYPTION_KEY must be base64 encoded.") from exc
        if len(raw) != ENCRYPTION_KEY_BYTES:
            raise ValueError(
                f"TOKEN_ENCRYPTION_KEY must decode to {ENCRYPTION_KEY_BYTES} bytes, "
                f"got {len(raw)}."
            )
        return value.strip()


class OAuthSettings(BaseSettings):
    """OAuth flow and token lifecycle configuration."""

    model_config = _SETTINGS_CONFIG

    state_ttl_seconds: int = Field(900, validation_alias="OAUTH_STATE_TTL")
    scopes: Annotated[tuple[str, ...], NoDecode] = Field(
        (
            "https://www.googleapis.com/auth/gmail.send",
            "https://www.googleapis.com/auth/userinfo.email",
            "openid",
        ),
        validation_alias="OAUTH_SCOPES",
    )
    required_scope: str = Field(
        "https://www.googleapis.com/auth/gmail.send",
        validation_alias="GMAIL_REQUIRED_SCOPE",
        description="Scope a token must carry to be considered connected.",
    )
    refresh_margin_seconds: int = Field(
        300,
        validation_alias="TOKEN_REFRESH_MARGIN_SECONDS",
        description="Refresh access tokens once less than this much validity remains.",
    )
    default_token_lifetime_seconds: int = Field(
        3600,
        validation_alias="TOKEN_DEFAULT_LIFETIME_SECONDS",
        description="Lifetime assumed when the provider omits expires_in.",
    )
    provider_timeout_seconds: float = Field(
        10.0, validation_alias="OAUTH_PROVIDER_TIMEOUT_SECONDS"
    )

    @field_validator("scopes", mode="before")
    @classmethod
    def _split_scopes(
        cls, value: str | tuple[str, ...] | list[str]
    ) -> tuple[str, ...]:
        """Support providing scopes as a comma-separated string."""
        if isinstance(value, tuple):
            return value
        if isinstance(value, list):
            return tuple(value)
        return tuple(scope.strip() for scope in value.split(",") if scope.strip())


class StorageSettings(BaseSettings):
    """Location of the SQLite database holding credentials and email history."""

    model_config = _SETTINGS_CONFIG

    db_path: str = Field("data/cv_mailer.sqlite3", validation_alias="CREDENTIAL_DB_PATH")


class OptimizerSettings(BaseSettings):
    """Configuration for the external CV optimization backend."""

    model_config = _SETTINGS_CONFIG

    base_url: AnyHttpUrl = Field("http://localhost:8000", validation_alias="AI_BACKEND_URL")
    timeout_seconds: float = Field(120.0, validation_alias="AI_BACKEND_TIMEOUT_SECONDS")


class AppSettings(BaseSettings):
    """Root settings object for the FastAPI application."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        populate_by_name=True,
        extra="ignore",
    )

    environment: str = Field("development", validation_alias="APP_ENV")
    log_level: str = Field("INFO", validation_alias="APP_LOG_LEVEL")
    frontend_base_url: Optional[HttpUrl] = Field(
        None,
        validation_alias="FRONTEND_BASE_URL",
        description="Optional URL for redirecting users back to the front-end.",
    )
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    oauth: OAuthSettings = Field(default_factory=OAuthSettings)
    google: GoogleSettings = Field(default_factory=GoogleSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    optimizer: OptimizerSettings = Field(default_factory=OptimizerSettings)


@lru_cache()
def get_settings() -> AppSettings:
    """Return a cached settings object."""
    return AppSettings()  # type: ignore[call-arg]


__all__ = [
    "AppSettings",
    "ENCRYPTION_KEY_BYTES",
    "GoogleSettings",
    "OAuthSettings",
    "OptimizerSettings",
    "SecuritySettings",
    "StorageSettings",
    "get_settings",
]
