"""Test helper that normalizes sys.path and environment defaults."""

from __future__ import annotations

import os
import sys
import tempfile
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]

if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

# 32 bytes of 0x01, base64 encoded.
TEST_ENCRYPTION_KEY = "AQEBAQEBAQEBAQEBAQEBAQEBAQEBAQEBAQEBAQEBAQE="

_DEFAULT_ENV_VARS: dict[str, str] = {
    "GOOGLE_CLIENT_ID": "test-client-id",
    "GOOGLE_CLIENT_SECRET": "test-client-secret",
    "GOOGLE_REDIRECT_URI": "https://example.com/oauth/callback",
    "TOKEN_ENCRYPTION_KEY": TEST_ENCRYPTION_KEY,
    "CREDENTIAL_DB_PATH": str(Path(tempfile.gettempdir()) / "cv-mailer-tests.sqlite3"),
}

for key, value in _DEFAULT_ENV_VARS.items():
    os.environ.setdefault(key, value)
