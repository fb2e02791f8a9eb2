"""
Lifecycle management for the AmoCRM access/refresh token pair.
"""

from __future__ import annotations

import asyncio
import logging
import weakref
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional

from amolink.clients.amocrm import AmoCRMClient, NotAuthorizedError
from amolink.clients.token_store import SQLiteTokenStore
from amolink.models.token import TokenRecord

logger = logging.getLogger(__name__)

LockTable = Dict[str, asyncio.Lock]


class RefreshLocks:
    """
    Per-domain refresh locks, one table per running event loop.

    Refresh tokens are single-use, so refreshes for one domain are serialized
    across every manager running on the same loop. An asyncio lock belongs to
    a single loop.
    """

    def __init__(self) -> None:
        self._by_loop: weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, LockTable] = (
            weakref.WeakKeyDictionary()
        )

    def for_domain(self, base_domain: str) -> asyncio.Lock:
        locks = self._by_loop.setdefault(asyncio.get_running_loop(), {})
        if base_domain not in locks:
            locks[base_domain] = asyncio.Lock()
        return locks[base_domain]


_REFRESH_LOCKS = RefreshLocks()


class AmoCRMTokenManager:
    """
    Serve a non-expired AmoCRM token, refreshing it on demand.

    An instance caches the token it resolved for its own lifetime only, so
    create one per request or logical operation rather than sharing it.
    """

    def __init__(
        self,
        store: SQLiteTokenStore,
        client: AmoCRMClient,
        *,
        base_domain: Optional[str] = None,
        refresh_margin: timedelta = timedelta(0),
        refresh_locks: Optional[RefreshLocks] = None,
    ) -> None:
        self._locks = refresh_locks or _REFRESH_LOCKS
        self._store = store
        self._client = client
        self._base_domain = base_domain
        self._refresh_margin = refresh_margin
        self._token: Optional[TokenRecord] = None

    def _load(self) -> Optional[TokenRecord]:
        if self._base_domain:
            return self._store.get(self._base_domain)
        return self._store.load_any()

    async def get_valid_token(self) -> TokenRecord:
        """Return the cached token, or load it and refresh it when expired."""
        if self._token is not None:
            return self._token

        record = self._load()
        if record is None:
            raise NotAuthorizedError(
                "AmoCRM access token not found; complete the authorization flow first."
            )

        if record.is_expired(margin=self._refresh_margin):
            record = await self._refresh(record)

        self._token = record
        return record

    async def _refresh(self, record: TokenRecord) -> TokenRecord:
        if not record.base_domain:
            raise NotAuthorizedError(
                "Stored AmoCRM token has no account domain; authorize again."
            )

        async with self._locks.for_domain(record.base_domain):
            # Someone else may have refreshed while we waited for the lock.
            current = self._store.get(record.base_domain) or record
            if not current.is_expired(margin=self._refresh_margin):
                return current

            logger.info("AmoCRM token for %s expired, refreshing", current.base_domain)
            refreshed_at = datetime.now(timezone.utc)
            access_token, refresh_token, expires_in = await self._client.refresh_token(
                current.refresh_token, current.base_domain
            )
            return self._store.upsert(
                current.base_domain,
                access_token=access_token,
                refresh_token=refresh_token,
                expires_at=refreshed_at + timedelta(seconds=expires_in),
            )

    async def authorize(self, code: str, base_domain: str) -> TokenRecord:
        """Exchange an authorization code and persist the resulting tokens."""
        issued_at = datetime.now(timezone.utc)
        access_token, refresh_token, expires_in = (
            await self._client.exchange_authorization_code(code, base_domain)
        )
        record = self._store.upsert(
            base_domain,
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=issued_at + timedelta(seconds=expires_in),
        )
        logger.info("Stored AmoCRM tokens for %s", base_domain)
        self._token = record
        return record


__all__ = ["AmoCRMTokenManager", "RefreshLocks"]
