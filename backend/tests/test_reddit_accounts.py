from __future__ import annotations

import datetime as dt

import pytest
from sqlalchemy.pool import NullPool

from app.core import database, tasks
from app.models.tables import RedditAccount
from app.services.reddit_accounts import RedditAccountService, needs_refresh
from app.services.reddit_oauth import RedditOAuthError
from app.utils.helpers import as_utc, utcnow


class DummyRefreshClient:
    def __init__(self, tokens=None, error=None):
        self.tokens = tokens
        self.error = error
        self.refreshed = []

    async def refresh_access_token(self, refresh_token):
        self.refreshed.append(refresh_token)
        if self.error:
            raise self.error
        return self.tokens


async def _add_account(session, **overrides):
    values = dict(
        user_id="user_1",
        username="spez",
        access_token="old_at",
        refresh_token="old_rt",
        token_expiry=utcnow() + dt.timedelta(minutes=1),
        scope=["identity"],
    )
    values.update(overrides)
    account = RedditAccount(**values)
    session.add(account)
    await session.commit()
    return account


def test_needs_refresh_margin():
    now = utcnow()
    soon = RedditAccount(token_expiry=now + dt.timedelta(minutes=4))
    later = RedditAccount(token_expiry=now + dt.timedelta(minutes=30))
    naive_soon = RedditAccount(token_expiry=(now + dt.timedelta(minutes=1)).replace(tzinfo=None))
    assert needs_refresh(soon, now) is True
    assert needs_refresh(later, now) is False
    assert needs_refresh(naive_soon, now) is True


@pytest.mark.asyncio
async def test_list_active_skips_inactive(session):
    await _add_account(session, username="one")
    await _add_account(session, username="two", is_active=False)
    await _add_account(session, username="other", user_id="user_2")
    accounts = await RedditAccountService().list_active(session, "user_1")
    assert [a.username for a in accounts] == ["one"]


@pytest.mark.asyncio
async def test_refresh_keeps_refresh_token_when_not_returned(session):
    account = await _add_account(session)
    client = DummyRefreshClient(tokens={"access_token": "new_at", "expires_in": 3600, "scope": "identity read"})
    before = utcnow()
    updated = await RedditAccountService().refresh_token(session, account.id, client=client)
    assert client.refreshed == ["old_rt"]
    assert updated.access_token == "new_at"
    assert updated.refresh_token == "old_rt"
    assert updated.scope == ["identity", "read"]
    assert as_utc(updated.token_expiry) >= before + dt.timedelta(minutes=59)


@pytest.mark.asyncio
async def test_refresh_stores_rotated_refresh_token(session):
    account = await _add_account(session)
    client = DummyRefreshClient(tokens={"access_token": "new_at", "refresh_token": "new_rt"})
    updated = await RedditAccountService().refresh_token(session, account.id, client=client)
    assert updated.refresh_token == "new_rt"


@pytest.mark.asyncio
async def test_rejected_refresh_deactivates_account(session):
    account = await _add_account(session)
    client = DummyRefreshClient(error=RedditOAuthError("Failed to refresh token", status_code=400))
    assert await RedditAccountService().refresh_token(session, account.id, client=client) is None
    await session.refresh(account)
    assert account.access_token == "old_at"
    assert account.is_active is False
    assert await RedditAccountService().list_active(session, "user_1") == []
    # nothing left to queue on the next listing
    assert await RedditAccountService().refresh_token(session, account.id, client=client) is None
    assert client.refreshed == ["old_rt"]


@pytest.mark.asyncio
async def test_retryable_refresh_error_propagates(session):
    account = await _add_account(session)
    client = DummyRefreshClient(error=RedditOAuthError("Network error", retryable=True))
    with pytest.raises(RedditOAuthError):
        await RedditAccountService().refresh_token(session, account.id, client=client)


@pytest.mark.asyncio
async def test_missing_account_is_skipped(session):
    client = DummyRefreshClient(tokens={"access_token": "x"})
    assert await RedditAccountService().refresh_token(session, 999, client=client) is None
    assert client.refreshed == []


def test_refresh_actor_enqueues_on_stub_broker():
    tasks.broker.flush_all()
    tasks.refresh_reddit_account_token.send(42)
    queue = tasks.refresh_reddit_account_token.queue_name
    messages = list(tasks.broker.queues[queue].queue)
    assert len(messages) == 1
    tasks.broker.flush_all()


def test_refresh_actor_retry_policy():
    options = tasks.refresh_reddit_account_token.options
    assert options["max_retries"] == 3
    assert options["min_backoff"] == 5_000
    assert options["max_backoff"] == 60_000


@pytest.mark.asyncio
async def test_actor_uses_its_own_unpooled_engine(monkeypatch):
    seen = []

    class RecordingService:
        async def refresh_token(self, session, account_id):
            seen.append((session.bind, account_id))

    monkeypatch.setattr(tasks, "RedditAccountService", RecordingService)
    await tasks._refresh_reddit_account(7)

    (engine, account_id), = seen
    assert account_id == 7
    assert engine is not database.engine
    assert isinstance(engine.sync_engine.pool, NullPool)
