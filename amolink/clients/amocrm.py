"""
AmoCRM OAuth and REST helpers.

These wrap the authorization-code flow, token refresh and the read-only lead
endpoints of the v4 API. Every network method performs exactly one request.
"""

from __future__ import annotations

import logging
from http import HTTPStatus
from typing import Any, Dict, Mapping, Optional, Tuple
from urllib.parse import urlencode

import httpx

from amolink.core.config import AmoCRMSettings

logger = logging.getLogger(__name__)

DEFAULT_LEADS_QUERY: Dict[str, Any] = {"limit": 25, "page": 1}


class UpstreamError(Exception):
    """Raised when AmoCRM answers with a non-success status or cannot be reached."""

    def __init__(
        self, message: str, *, status_code: Optional[int] = None, body: str = ""
    ) -> None:
        super().__init__(f"{message}: {body}" if body else message)
        self.status_code = status_code
        self.body = body


class NotAuthorizedError(Exception):
    """Raised when no AmoCRM token has been stored yet."""


class AmoCRMClient:
    """Build AmoCRM authorization URLs and talk to the OAuth and leads endpoints."""

    def __init__(
        self,
        settings: AmoCRMSettings,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._settings = settings
        self._transport = transport

    @staticmethod
    def _base_url(base_domain: str) -> str:
        return f"https://{base_domain}"

    def _http(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self._settings.http_timeout, transport=self._transport
        )

    def build_authorization_url(self, base_domain: str, state: str = "state") -> str:
        """Construct the AmoCRM consent URL for ``base_domain``."""
        params = {
            "client_id": self._settings.client_id,
            "mode": "post_message",
            "redirect_uri": self._settings.redirect_uri,
            "response_type": "code",
            "state": state,
        }
        return f"{self._base_url(base_domain)}/oauth?{urlencode(params)}"

    async def _send(
        self, action: str, method: str, url: str, **kwargs: Any
    ) -> httpx.Response:
        try:
            async with self._http() as client:
                response = await client.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            logger.error("AmoCRM request failed while trying to %s: %s", action, exc)
            raise UpstreamError(f"Failed to {action}", body=str(exc)) from exc

        if not response.is_success:
            logger.error(
                "AmoCRM API error while trying to %s (HTTP %s): %s",
                action,
                response.status_code,
                response.text,
            )
            raise UpstreamError(
                f"Failed to {action}",
                status_code=response.status_code,
                body=response.text,
            )
        return response

    async def _request_tokens(
        self, action: str, base_domain: str, grant: Mapping[str, str]
    ) -> Tuple[str, str, int]:
        payload = {
            "client_id": self._settings.client_id,
            "client_secret": self._settings.client_secret,
            "redirect_uri": self._settings.redirect_uri,
            **grant,
        }
        response = await self._send(
            action,
            "POST",
            f"{self._base_url(base_domain)}/oauth2/access_token",
            json=payload,
        )

        token_payload = self._json_body(action, response)
        access_token = token_payload.get("access_token")
        refresh_token = token_payload.get("refresh_token")
        expires_in = token_payload.get("expires_in")

        try:
            expires_in = int(expires_in) if expires_in else 0
        except (TypeError, ValueError):
            expires_in = 0

        if not access_token or not refresh_token or expires_in <= 0:
            logger.error(
                "Incomplete token payload from %s: keys=%s",
                base_domain,
                sorted(token_payload),
            )
            raise UpstreamError(
                f"Failed to {action}",
                status_code=response.status_code,
                body="Incomplete token payload returned from AmoCRM.",
            )

        return access_token, refresh_token, expires_in

    @staticmethod
    def _json_body(action: str, response: httpx.Response) -> Dict[str, Any]:
        """Decode a JSON object; AmoCRM answers "nothing found" with 204 and no body."""
        if response.status_code == HTTPStatus.NO_CONTENT or not response.content:
            return {}
        try:
            body = response.json()
        except ValueError as exc:
            logger.error("AmoCRM returned a non-JSON response: %s", response.text)
            raise UpstreamError(
                f"Failed to {action}",
                status_code=response.status_code,
                body=response.text,
            ) from exc
        if not isinstance(body, dict):
            logger.error("AmoCRM returned unexpected JSON: %s", response.text)
            raise UpstreamError(
                f"Failed to {action}",
                status_code=response.status_code,
                body=response.text,
            )
        return body

    async def exchange_authorization_code(
        self, code: str, base_domain: str
    ) -> Tuple[str, str, int]:
        """
        Exchange an authorization code for tokens.

        Returns a tuple of (access_token, refresh_token, expires_in_seconds).
        """
        return await self._request_tokens(
            "obtain access token",
            base_domain,
            {"grant_type": "authorization_code", "code": code},
        )

    async def refresh_token(
        self, refresh_token: str, base_domain: str
    ) -> Tuple[str, str, int]:
        """Trade a refresh token for a new pair; AmoCRM rotates both tokens."""
        return await self._request_tokens(
            "refresh access token",
            base_domain,
            {"grant_type": "refresh_token", "refresh_token": refresh_token},
        )

    async def get_leads(
        self,
        access_token: str,
        base_domain: str,
        params: Optional[Mapping[str, Any]] = None,
    ) -> Dict[str, Any]:
        query = {**DEFAULT_LEADS_QUERY, **(params or {})}
        response = await self._send(
            "fetch leads",
            "GET",
            f"{self._base_url(base_domain)}/api/v4/leads",
            params=query,
            headers={"Authorization": f"Bearer {access_token}"},
        )
        return self._json_body("fetch leads", response)

    async def get_lead(
        self, access_token: str, base_domain: str, lead_id: int
    ) -> Dict[str, Any]:
        """Return the lead, or ``{}`` when AmoCRM reports it with 204 No Content."""
        response = await self._send(
            "fetch lead",
            "GET",
            f"{self._base_url(base_domain)}/api/v4/leads/{lead_id}",
            headers={"Authorization": f"Bearer {access_token}"},
        )
        return self._json_body("fetch lead", response)


__all__ = [
    "AmoCRMClient",
    "DEFAULT_LEADS_QUERY",
    "NotAuthorizedError",
    "UpstreamError",
]
