"""Operational checks for the CV mailer's environment configuration.

Commands:

``check``
    Load ``AppSettings`` from the given ``.env`` file and confirm the token
    encryption key works by encrypting and decrypting a probe value.
``record`` / ``verify``
    Run ``check``, then store or compare a SHA256 checksum of the ``.env`` file
    so unexpected edits are noticed before a restart.
``generate-key``
    Print a new base64 ``TOKEN_ENCRYPTION_KEY``. Changing the key makes every
    stored credential unreadable, so users must reconnect afterwards.

Example usages::

    python -m scripts.check_env record --env-file /opt/cv-mailer/.env \
        --hash-file /opt/cv-mailer/.env.sha256
    python -m scripts.check_env verify --env-file /opt/cv-mailer/.env \
        --hash-file /opt/cv-mailer/.env.sha256
    python -m scripts.check_env generate-key
"""

from __future__ import annotations

import argparse
import hashlib
import sys
from pathlib import Path

from pydantic import ValidationError

from app.core.config import AppSettings, _load_env_file
from app.services.token_cipher import TokenCipherService

EXIT_OK = 0
EXIT_VALIDATION_ERROR = 2
EXIT_CHECKSUM_ERROR = 3
EXIT_CIPHER_ERROR = 4
EXIT_RUNTIME_ERROR = 5

_PROBE = "cv-mailer-probe-token"


def _compute_hash(env_file: Path) -> str:
    return hashlib.sha256(env_file.read_bytes()).hexdigest()


def _load_settings(env_file: Path) -> AppSettings:
    """Load settings, letting values in ``env_file`` fill unset variables."""
    _load_env_file(str(env_file))
    return AppSettings()  # type: ignore[call-arg]


def _cipher_self_test(settings: AppSettings) -> bool:
    cipher = TokenCipherService.from_base64(settings.security.token_encryption_key)
    return cipher.decrypt(cipher.encrypt(_PROBE)) == _PROBE


def _record_checksum(env_file: Path, hash_file: Path) -> int:
    checksum = _compute_hash(env_file)
    hash_file.write_text(f"{checksum}\n", encoding="utf-8")
    print(f"Recorded checksum to {hash_file} ({checksum})")
    return EXIT_OK


def _verify_checksum(env_file: Path, hash_file: Path) -> int:
    if not hash_file.exists():
        print(
            f"Expected checksum file {hash_file} is missing. "
            "Re-run with the 'record' command to establish a baseline.",
            file=sys.stderr,
        )
        return EXIT_RUNTIME_ERROR

    expected = hash_file.read_text(encoding="utf-8").strip()
    actual = _compute_hash(env_file)
    if expected == actual:
        print("Environment checksum OK.")
        return EXIT_OK

    print(
        "Environment checksum mismatch!\n"
        f"  expected: {expected}\n"
        f"  actual:   {actual}\n"
        "Investigate recent changes before restarting services.",
        file=sys.stderr,
    )
    return EXIT_CHECKSUM_ERROR


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Validate CV mailer settings and detect .env drift."
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    for name, help_text, needs_hash in (
        ("check", "Validate settings and the encryption key.", False),
        ("record", "Validate settings and store the checksum baseline.", True),
        ("verify", "Validate settings and compare the checksum with the baseline.", True),
    ):
        subparser = subparsers.add_parser(name, help=help_text)
        subparser.add_argument(
            "--env-file",
            default=".env",
            type=Path,
            help="Path to the environment file (default: .env in the repo root).",
        )
        if needs_hash:
            subparser.add_argument(
                "--hash-file",
                required=True,
                type=Path,
                help="Location of the checksum baseline.",
            )

    subparsers.add_parser("generate-key", help="Print a new TOKEN_ENCRYPTION_KEY value.")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)

    if args.command == "generate-key":
        print(TokenCipherService.generate_key())
        return EXIT_OK

    env_file: Path = args.env_file
    if not env_file.exists():
        print(
            f"Environment file {env_file} does not exist. "
            "Ensure the path is correct or create it before running this tool.",
            file=sys.stderr,
        )
        return EXIT_RUNTIME_ERROR

    try:
        settings = _load_settings(env_file)
    except ValidationError as exc:
        print(
            "Settings validation failed. Missing or invalid values detected:\n"
            f"{exc}",
            file=sys.stderr,
        )
        return EXIT_VALIDATION_ERROR

    if not _cipher_self_test(settings):  # pragma: no cover - AES-GCM round trip
        print("Token encryption self-test failed.", file=sys.stderr)
        return EXIT_CIPHER_ERROR

    if args.command == "record":
        return _record_checksum(env_file, args.hash_file)
    if args.command == "verify":
        return _verify_checksum(env_file, args.hash_file)
    print("Settings OK.")
    return EXIT_OK


if __name__ == "__main__":  # pragma: no cover - script entry point
    sys.exit(main())
