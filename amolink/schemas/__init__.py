"""Public schema exports."""

from .auth import AmoCRMCallbackPayload, AuthorizationUrlResponse, ConnectionStatus

__all__ = [
    "AmoCRMCallbackPayload",
    "AuthorizationUrlResponse",
    "ConnectionStatus",
]
