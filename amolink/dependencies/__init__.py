"""Expose dependency helpers for FastAPI routers."""

from .clients import (
    get_amocrm_client,
    get_amocrm_service,
    get_token_cipher_service,
    get_token_manager,
    get_token_store,
)

__all__ = [
    "get_amocrm_client",
    "get_amocrm_service",
    "get_token_cipher_service",
    "get_token_manager",
    "get_token_store",
]
