from __future__ import annotations

import httpx
import pytest
from fastapi import HTTPException
from starlette.requests import Request

from app.core import security
from app.core.security import DEV_IDENTITY, fetch_clerk_user, get_identity, identity_from_clerk_user

CLERK_USER = {
    "id": "user_abc",
    "first_name": "Jane",
    "last_name": "Doe",
    "username": "jdoe",
    "image_url": "https://img.clerk.com/x.png",
    "primary_email_address_id": "idn_2",
    "email_addresses": [
        {"id": "idn_1", "email_address": "old@example.com"},
        {"id": "idn_2", "email_address": "jane@example.com"},
    ],
}


def _request(headers=None):
    raw = [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()]
    return Request({"type": "http", "method": "GET", "path": "/", "headers": raw, "query_string": b""})


def test_identity_uses_primary_email_and_full_name():
    identity = identity_from_clerk_user(CLERK_USER)
    assert identity.id == "user_abc"
    assert identity.email == "jane@example.com"
    assert identity.display_name == "Jane Doe"
    assert identity.image_url == "https://img.clerk.com/x.png"


def test_display_name_falls_back_to_username():
    identity = identity_from_clerk_user(dict(CLERK_USER, first_name=None, last_name=None))
    assert identity.display_name == "jdoe"


@pytest.mark.asyncio
async def test_fetch_clerk_user(monkeypatch):
    monkeypatch.setattr(security.settings, "CLERK_SECRET_KEY", "sk_test")
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json=CLERK_USER)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        identity = await fetch_clerk_user("user_abc", client=client)
    assert identity.email == "jane@example.com"
    assert seen[0].url.path.endswith("/users/user_abc")
    assert seen[0].headers["Authorization"] == "Bearer sk_test"


@pytest.mark.asyncio
async def test_banned_clerk_user_is_rejected(monkeypatch):
    monkeypatch.setattr(security.settings, "CLERK_SECRET_KEY", "sk_test")
    transport = httpx.MockTransport(lambda req: httpx.Response(200, json=dict(CLERK_USER, banned=True)))
    async with httpx.AsyncClient(transport=transport) as client:
        with pytest.raises(HTTPException) as info:
            await fetch_clerk_user("user_abc", client=client)
    assert info.value.status_code == 401


@pytest.mark.asyncio
async def test_no_token_means_no_identity():
    assert await get_identity(_request()) is None


@pytest.mark.asyncio
async def test_dev_bypass(monkeypatch):
    monkeypatch.setattr(security.settings, "DEV_AUTH_BYPASS", True)
    assert await get_identity(_request()) == DEV_IDENTITY


@pytest.mark.asyncio
async def test_token_resolves_through_clerk(monkeypatch):
    monkeypatch.setattr(security, "decode_clerk_jwt", lambda token: {"sub": "user_abc"})

    async def fake_fetch(user_id, client=None):
        return identity_from_clerk_user(dict(CLERK_USER, id=user_id))

    monkeypatch.setattr(security, "fetch_clerk_user", fake_fetch)
    identity = await get_identity(_request({"Authorization": "Bearer tok"}))
    assert identity.id == "user_abc"


@pytest.mark.asyncio
async def test_token_without_sub_is_rejected(monkeypatch):
    monkeypatch.setattr(security, "decode_clerk_jwt", lambda token: {})
    with pytest.raises(HTTPException) as info:
        await get_identity(_request({"Authorization": "Bearer tok"}))
    assert info.value.status_code == 401
