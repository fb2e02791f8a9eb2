"""
Factory functions to provide shared clients and services as FastAPI dependencies.

Stateless collaborators are process-wide singletons. The token manager keeps a
per-instance token cache, so it is built fresh for every request.
"""

from datetime import timedelta
from functools import lru_cache

from fastapi import Depends

from amolink.clients import AmoCRMClient, SQLiteTokenStore
from amolink.core.config import get_settings
from amolink.services import AmoCRMService, AmoCRMTokenManager, TokenCipherService


@lru_cache()
def _settings():
    """Internal helper to cache settings for client factories."""
    return get_settings()


@lru_cache()
def get_token_cipher_service() -> TokenCipherService:
    """Provide symmetric encryption helper for token storage."""
    settings = _settings()
    secret = settings.security.token_encryption_secret or settings.amocrm.client_secret
    return TokenCipherService(secret=secret)


@lru_cache()
def get_token_store() -> SQLiteTokenStore:
    """Provide the shared SQLite token store."""
    settings = _settings()
    return SQLiteTokenStore(
        settings.storage.token_db_path,
        token_cipher=get_token_cipher_service(),
    )


@lru_cache()
def get_amocrm_client() -> AmoCRMClient:
    """Create a singleton AmoCRM API client."""
    return AmoCRMClient(_settings().amocrm)


def get_token_manager(
    store: SQLiteTokenStore = Depends(get_token_store),
    client: AmoCRMClient = Depends(get_amocrm_client),
) -> AmoCRMTokenManager:
    """Build a request-scoped token manager."""
    amocrm = _settings().amocrm
    return AmoCRMTokenManager(
        store,
        client,
        base_domain=amocrm.base_domain,
        refresh_margin=timedelta(seconds=amocrm.refresh_margin_seconds),
    )


def get_amocrm_service(
    client: AmoCRMClient = Depends(get_amocrm_client),
    token_manager: AmoCRMTokenManager = Depends(get_token_manager),
) -> AmoCRMService:
    return AmoCRMService(client, token_manager)


__all__ = [
    "get_amocrm_client",
    "get_amocrm_service",
    "get_token_cipher_service",
    "get_token_manager",
    "get_token_store",
]
