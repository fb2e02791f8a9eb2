from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import anyio
import pytest

from amolink.clients.amocrm import NotAuthorizedError, UpstreamError
from amolink.clients.token_store import SQLiteTokenStore
from amolink.services.token_manager import AmoCRMTokenManager

DOMAIN = "example.amocrm.ru"


class DummyAmoCRMClient:
    def __init__(self, *, fail: bool = False, delay: float = 0.0) -> None:
        self.fail = fail
        self.delay = delay
        self.exchanged: list[tuple[str, str]] = []
        self.refreshed: list[tuple[str, str]] = []

    async def exchange_authorization_code(self, code: str, base_domain: str):
        self.exchanged.append((code, base_domain))
        if self.fail:
            raise UpstreamError("Failed to obtain access token", status_code=400, body="bad code")
        return "exchanged-access", "exchanged-refresh", 86400

    async def refresh_token(self, refresh_token: str, base_domain: str):
        self.refreshed.append((refresh_token, base_domain))
        if self.delay:
            await anyio.sleep(self.delay)
        if self.fail:
            raise UpstreamError("Failed to refresh access token", status_code=401, body="revoked")
        return f"refreshed-access-{len(self.refreshed)}", "refreshed-refresh", 3600


def _store_token(store: SQLiteTokenStore, *, expires_in: timedelta, domain: str = DOMAIN) -> None:
    store.upsert(
        domain,
        access_token="stored-access",
        refresh_token="stored-refresh",
        expires_at=datetime.now(timezone.utc) + expires_in,
    )


@pytest.mark.anyio
async def test_missing_token_raises_without_http_calls(token_store) -> None:
    client = DummyAmoCRMClient()
    manager = AmoCRMTokenManager(token_store, client)

    with pytest.raises(NotAuthorizedError):
        await manager.get_valid_token()

    assert client.exchanged == []
    assert client.refreshed == []


@pytest.mark.anyio
async def test_authorize_then_get_valid_token_uses_exchanged_token(token_store) -> None:
    client = DummyAmoCRMClient()
    manager = AmoCRMTokenManager(token_store, client)

    authorized = await manager.authorize("auth-code", DOMAIN)
    token = await manager.get_valid_token()

    assert token.access_token == "exchanged-access"
    assert token is authorized
    assert client.exchanged == [("auth-code", DOMAIN)]
    assert client.refreshed == []

    stored = token_store.get(DOMAIN)
    assert stored.access_token == "exchanged-access"
    assert stored.expires_at > datetime.now(timezone.utc) + timedelta(hours=23)


@pytest.mark.anyio
async def test_failed_exchange_persists_nothing(token_store) -> None:
    manager = AmoCRMTokenManager(token_store, DummyAmoCRMClient(fail=True))

    with pytest.raises(UpstreamError):
        await manager.authorize("bad", DOMAIN)

    assert token_store.load_any() is None


@pytest.mark.anyio
async def test_valid_token_is_served_without_refresh(token_store) -> None:
    _store_token(token_store, expires_in=timedelta(hours=1))
    client = DummyAmoCRMClient()

    token = await AmoCRMTokenManager(token_store, client).get_valid_token()

    assert token.access_token == "stored-access"
    assert client.refreshed == []


@pytest.mark.anyio
async def test_expired_token_is_refreshed_once_and_persisted(token_store) -> None:
    _store_token(token_store, expires_in=timedelta(seconds=-5))
    client = DummyAmoCRMClient()
    manager = AmoCRMTokenManager(token_store, client)

    token = await manager.get_valid_token()
    again = await manager.get_valid_token()

    assert client.refreshed == [("stored-refresh", DOMAIN)]
    assert token.access_token == "refreshed-access-1"
    assert token.expires_at > datetime.now(timezone.utc)
    assert again is token

    stored = token_store.get(DOMAIN)
    assert stored.access_token == "refreshed-access-1"
    assert stored.refresh_token == "refreshed-refresh"


@pytest.mark.anyio
async def test_refresh_margin_triggers_early_refresh(token_store) -> None:
    _store_token(token_store, expires_in=timedelta(seconds=30))
    client = DummyAmoCRMClient()
    manager = AmoCRMTokenManager(token_store, client, refresh_margin=timedelta(minutes=5))

    token = await manager.get_valid_token()

    assert token.access_token == "refreshed-access-1"
    assert len(client.refreshed) == 1


@pytest.mark.anyio
async def test_failed_refresh_propagates_and_keeps_stored_token(token_store) -> None:
    _store_token(token_store, expires_in=timedelta(seconds=-5))
    manager = AmoCRMTokenManager(token_store, DummyAmoCRMClient(fail=True))

    with pytest.raises(UpstreamError):
        await manager.get_valid_token()

    assert token_store.get(DOMAIN).access_token == "stored-access"


@pytest.mark.anyio
async def test_pinned_domain_reads_only_that_account(token_store) -> None:
    _store_token(token_store, expires_in=timedelta(hours=1), domain="pinned.amocrm.ru")
    _store_token(token_store, expires_in=timedelta(hours=1), domain="other.amocrm.ru")

    pinned = AmoCRMTokenManager(
        token_store, DummyAmoCRMClient(), base_domain="pinned.amocrm.ru"
    )
    missing = AmoCRMTokenManager(
        token_store, DummyAmoCRMClient(), base_domain="absent.amocrm.ru"
    )

    assert (await pinned.get_valid_token()).base_domain == "pinned.amocrm.ru"
    with pytest.raises(NotAuthorizedError):
        await missing.get_valid_token()


@pytest.mark.anyio
async def test_concurrent_managers_share_a_single_refresh(token_store) -> None:
    domain = "concurrent.amocrm.ru"
    _store_token(token_store, expires_in=timedelta(seconds=-5), domain=domain)
    client = DummyAmoCRMClient(delay=0.05)
    results = []

    async def resolve() -> None:
        manager = AmoCRMTokenManager(token_store, client, base_domain=domain)
        results.append(await manager.get_valid_token())

    async with anyio.create_task_group() as tg:
        tg.start_soon(resolve)
        tg.start_soon(resolve)

    assert len(client.refreshed) == 1
    assert {token.access_token for token in results} == {"refreshed-access-1"}


def test_refresh_locks_work_across_separate_event_loops(token_store) -> None:
    domain = "restarted.amocrm.ru"
    client = DummyAmoCRMClient(delay=0.01)

    async def resolve_twice() -> None:
        _store_token(token_store, expires_in=timedelta(seconds=-5), domain=domain)

        async def resolve() -> None:
            manager = AmoCRMTokenManager(token_store, client, base_domain=domain)
            await manager.get_valid_token()

        await asyncio.gather(resolve(), resolve())

    asyncio.run(resolve_twice())
    asyncio.run(resolve_twice())

    assert len(client.refreshed) == 2
