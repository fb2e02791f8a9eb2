"""Expose constructed client wrappers."""

from .amocrm import AmoCRMClient, NotAuthorizedError, UpstreamError
from .token_store import SQLiteTokenStore

__all__ = [
    "AmoCRMClient",
    "NotAuthorizedError",
    "SQLiteTokenStore",
    "UpstreamError",
]
