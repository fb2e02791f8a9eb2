"""Entry points used by the HTTP layer to talk to AmoCRM."""

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional

from amolink.clients.amocrm import AmoCRMClient
from amolink.models.token import TokenRecord
from amolink.services.token_manager import AmoCRMTokenManager


class AmoCRMService:
    """Combine the API client with the token manager for one logical request."""

    def __init__(self, client: AmoCRMClient, token_manager: AmoCRMTokenManager) -> None:
        self._client = client
        self._tokens = token_manager

    def get_auth_url(self, base_domain: str) -> str:
        return self._client.build_authorization_url(base_domain)

    async def get_access_token(self, code: str, base_domain: str) -> TokenRecord:
        """Finish the OAuth flow for ``base_domain``."""
        return await self._tokens.authorize(code, base_domain)

    async def get_leads(self, params: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
        token = await self._tokens.get_valid_token()
        return await self._client.get_leads(token.access_token, token.base_domain, params)

    async def get_lead(self, lead_id: int) -> Dict[str, Any]:
        token = await self._tokens.get_valid_token()
        return await self._client.get_lead(token.access_token, token.base_domain, lead_id)


__all__ = ["AmoCRMService"]
