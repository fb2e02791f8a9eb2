"""Operational checks for an amolink deployment.

Commands:

``check``
    Load ``AppSettings`` from the given ``.env`` file and report missing or
    malformed AmoCRM credentials.
``record`` / ``verify``
    Validate as above, then store or compare a SHA-256 baseline of the
    ``.env`` file so unexpected edits are noticed before a restart.
``token-status``
    Validate, then open the token database and print which account is
    connected and when its access token expires. Tokens are never printed.

Example::

    python -m scripts.check_env record --env-file /opt/amolink/.env \
        --hash-file /opt/amolink/.env.sha256
    python -m scripts.check_env token-status --env-file /opt/amolink/.env
"""

from __future__ import annotations

import argparse
import hashlib
import sys
from pathlib import Path
from typing import Callable

from pydantic import ValidationError

from amolink.clients.token_store import SQLiteTokenStore
from amolink.core.config import AppSettings, _load_env_file
from amolink.services.token_cipher import TokenCipherService

EXIT_OK = 0
EXIT_NOT_CONNECTED = 1
EXIT_VALIDATION_ERROR = 2
EXIT_CHECKSUM_ERROR = 3
EXIT_RUNTIME_ERROR = 5


def _sha256(env_file: Path) -> str:
    return hashlib.sha256(env_file.read_bytes()).hexdigest()


def _load_settings(env_file: Path) -> AppSettings:
    if not env_file.exists():
        raise FileNotFoundError(f"Environment file {env_file} does not exist.")
    _load_env_file(str(env_file))
    return AppSettings()  # type: ignore[call-arg]


def _record(env_file: Path, hash_file: Path) -> int:
    checksum = _sha256(env_file)
    hash_file.write_text(f"{checksum}\n", encoding="utf-8")
    print(f"Recorded checksum to {hash_file} ({checksum})")
    return EXIT_OK


def _verify(env_file: Path, hash_file: Path) -> int:
    if not hash_file.exists():
        print(
            f"No baseline at {hash_file}; run 'record' first.",
            file=sys.stderr,
        )
        return EXIT_RUNTIME_ERROR

    expected = hash_file.read_text(encoding="utf-8").strip()
    actual = _sha256(env_file)
    if expected != actual:
        print(
            f"Environment checksum mismatch (expected {expected}, got {actual}).",
            file=sys.stderr,
        )
        return EXIT_CHECKSUM_ERROR

    print("Environment checksum OK.")
    return EXIT_OK


def _token_status(settings: AppSettings) -> int:
    secret = settings.security.token_encryption_secret or settings.amocrm.client_secret
    store = SQLiteTokenStore(
        settings.storage.token_db_path,
        token_cipher=TokenCipherService(secret=secret),
    )
    domain = settings.amocrm.base_domain
    record = store.get(domain) if domain else store.load_any()
    if record is None:
        print("No AmoCRM account connected yet.", file=sys.stderr)
        return EXIT_NOT_CONNECTED

    state = "expired" if record.is_expired() else "valid"
    print(
        f"{record.base_domain}: access token {state}, "
        f"expires at {record.expires_at.isoformat()}"
    )
    return EXIT_OK


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Validate amolink settings, detect .env drift and inspect token state."
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    commands = (
        ("check", "Validate settings only.", False),
        ("token-status", "Show the stored token's account and expiry.", False),
        ("record", "Validate settings and store the checksum baseline.", True),
        ("verify", "Validate settings and compare against the baseline.", True),
    )
    for name, help_text, needs_hash_file in commands:
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument(
            "--env-file",
            default=Path(".env"),
            type=Path,
            help="Path to the environment file (default: ./.env).",
        )
        if needs_hash_file:
            sub.add_argument("--hash-file", required=True, type=Path)

    return parser


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    env_file: Path = args.env_file

    try:
        settings = _load_settings(env_file)
    except FileNotFoundError as exc:
        print(str(exc), file=sys.stderr)
        return EXIT_RUNTIME_ERROR
    except ValidationError as exc:
        print(
            "Settings validation failed. Missing or invalid values detected:\n"
            f"{exc.json(indent=2)}",
            file=sys.stderr,
        )
        return EXIT_VALIDATION_ERROR

    handlers: dict[str, Callable[[], int]] = {
        "check": lambda: EXIT_OK,
        "record": lambda: _record(env_file, args.hash_file),
        "verify": lambda: _verify(env_file, args.hash_file),
        "token-status": lambda: _token_status(settings),
    }
    return handlers[args.command]()


if __name__ == "__main__":  # pragma: no cover - script entry point
    sys.exit(main())
