"""Schemas related to the AmoCRM OAuth flow."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class AmoCRMCallbackPayload(BaseModel):
    """Payload sent to complete the OAuth callback exchange."""

    code: str = Field(..., description="Authorization code returned by AmoCRM.")
    referer: str = Field(
        ..., description="Account host the code was issued for, e.g. example.amocrm.ru."
    )
    state: Optional[str] = Field(None, description="State echoed back by AmoCRM.")


class AuthorizationUrlResponse(BaseModel):
    authorization_url: str


class ConnectionStatus(BaseModel):
    """Public view of a stored token; the tokens themselves are never returned."""

    status: str = "connected"
    base_domain: Optional[str]
    expires_at: datetime


__all__ = ["AmoCRMCallbackPayload", "AuthorizationUrlResponse", "ConnectionStatus"]
