"""Pytest configuration shared across the suite."""

try:
    from . import _bootstrap  # noqa: F401
except ImportError:  # pragma: no cover - tests/ is not a package
    import _bootstrap  # type: ignore # noqa: F401

from pathlib import Path

import pytest

from amolink.clients.token_store import SQLiteTokenStore
from amolink.core.config import AmoCRMSettings
from amolink.services.token_cipher import TokenCipherService


@pytest.fixture
def anyio_backend() -> str:
    """Force AnyIO-powered tests to run against asyncio backend only."""
    return "asyncio"


@pytest.fixture
def amocrm_settings() -> AmoCRMSettings:
    return AmoCRMSettings(
        AMOCRM_CLIENT_ID="client-id",
        AMOCRM_CLIENT_SECRET="client-secret",
        AMOCRM_REDIRECT_URI="https://app.example.com/amocrm/callback",
    )


@pytest.fixture
def cipher() -> TokenCipherService:
    return TokenCipherService(secret="store-secret")


@pytest.fixture
def token_store(tmp_path: Path, cipher: TokenCipherService) -> SQLiteTokenStore:
    return SQLiteTokenStore(str(tmp_path / "tokens.sqlite3"), token_cipher=cipher)
