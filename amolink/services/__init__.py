"""Service layer exports."""

from .amocrm import AmoCRMService
from .token_cipher import TokenCipherService
from .token_manager import AmoCRMTokenManager

__all__ = [
    "AmoCRMService",
    "AmoCRMTokenManager",
    "TokenCipherService",
]
