from __future__ import annotations

import base64
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from app.services.reddit_oauth import (
    IDENTITY_URL,
    OAUTH_SCOPES,
    TOKEN_URL,
    RedditCodeAlreadyUsed,
    RedditOAuthClient,
    RedditOAuthError,
    backoff_delay,
)

TOKENS = {"access_token": "at_1", "refresh_token": "rt_1", "expires_in": 3600, "scope": "identity read"}


def make_client(handler, sleep):
    calls: list[httpx.Request] = []

    def _record(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return handler(request, len(calls))

    http = httpx.AsyncClient(transport=httpx.MockTransport(_record))
    client = RedditOAuthClient(
        client_id="cid",
        client_secret="secret",
        redirect_uri="http://localhost:5173/auth/reddit/callback",
        user_agent="web:SubPirate:test",
        http=http,
        sleep=sleep,
    )
    return client, calls


def test_backoff_doubles():
    assert [backoff_delay(i) for i in range(3)] == [1.0, 2.0, 4.0]


def test_authorize_url_carries_required_params():
    client = RedditOAuthClient(client_id="cid", client_secret="secret", redirect_uri="http://cb")
    url = urlparse(client.build_authorize_url("st4te"))
    params = parse_qs(url.query)
    assert f"{url.scheme}://{url.netloc}{url.path}" == "https://www.reddit.com/api/v1/authorize"
    assert params["client_id"] == ["cid"]
    assert params["response_type"] == ["code"]
    assert params["state"] == ["st4te"]
    assert params["redirect_uri"] == ["http://cb"]
    assert params["duration"] == ["permanent"]
    assert params["scope"] == [" ".join(OAUTH_SCOPES)]


def test_missing_credentials_raise():
    client = RedditOAuthClient(client_id="", client_secret="")
    client.client_id = None
    with pytest.raises(RedditOAuthError):
        client.build_authorize_url("x")


@pytest.mark.asyncio
async def test_exchange_sends_basic_auth_form_body(no_sleep):
    client, calls = make_client(lambda req, n: httpx.Response(200, json=TOKENS), no_sleep)
    tokens = await client.exchange_code("the-code#_")
    assert tokens["access_token"] == "at_1"

    (request,) = calls
    assert str(request.url) == TOKEN_URL
    assert request.headers["Content-Type"] == "application/x-www-form-urlencoded"
    assert request.headers["User-Agent"] == "web:SubPirate:test"
    expected = base64.b64encode(b"cid:secret").decode()
    assert request.headers["Authorization"] == f"Basic {expected}"
    body = parse_qs(request.content.decode())
    assert body == {
        "grant_type": ["authorization_code"],
        "code": ["the-code"],
        "redirect_uri": ["http://localhost:5173/auth/reddit/callback"],
    }


@pytest.mark.asyncio
async def test_server_error_retried_three_times_with_growing_delay(no_sleep):
    client, calls = make_client(lambda req, n: httpx.Response(500, json={"message": "boom"}), no_sleep)
    with pytest.raises(RedditOAuthError) as info:
        await client.exchange_code("code")
    assert len(calls) == 3
    assert no_sleep.delays == [1.0, 2.0]
    assert info.value.status_code == 500
    assert info.value.retryable is True


@pytest.mark.asyncio
async def test_server_error_then_success(no_sleep):
    def handler(req, n):
        return httpx.Response(502) if n == 1 else httpx.Response(200, json=TOKENS)

    client, calls = make_client(handler, no_sleep)
    tokens = await client.exchange_code("code")
    assert tokens["refresh_token"] == "rt_1"
    assert len(calls) == 2
    assert no_sleep.delays == [1.0]


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [400, 401, 403, 404])
async def test_client_errors_are_not_retried(no_sleep, status):
    client, calls = make_client(lambda req, n: httpx.Response(status, json={"error": "unauthorized"}), no_sleep)
    with pytest.raises(RedditOAuthError) as info:
        await client.exchange_code("code")
    assert len(calls) == 1
    assert no_sleep.delays == []
    assert info.value.status_code == status
    assert info.value.retryable is False


@pytest.mark.asyncio
async def test_transport_errors_are_retried(no_sleep):
    def handler(req, n):
        raise httpx.ConnectError("unreachable", request=req)

    client, calls = make_client(handler, no_sleep)
    with pytest.raises(RedditOAuthError) as info:
        await client.exchange_code("code")
    assert len(calls) == 3
    assert info.value.retryable is True


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [200, 400])
async def test_invalid_grant_is_code_already_used(no_sleep, status):
    client, calls = make_client(lambda req, n: httpx.Response(status, json={"error": "invalid_grant"}), no_sleep)
    with pytest.raises(RedditCodeAlreadyUsed):
        await client.exchange_code("code")
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_success_without_refresh_token_is_an_error(no_sleep):
    client, calls = make_client(lambda req, n: httpx.Response(200, json={"access_token": "at"}), no_sleep)
    with pytest.raises(RedditOAuthError) as info:
        await client.exchange_code("code")
    assert "missing required tokens" in info.value.message
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_identity_retries_rate_limit(no_sleep):
    def handler(req, n):
        if n < 3:
            return httpx.Response(429)
        return httpx.Response(200, json={"name": "spez"})

    client, calls = make_client(handler, no_sleep)
    me = await client.fetch_identity("at_1")
    assert me["name"] == "spez"
    assert len(calls) == 3
    assert no_sleep.delays == [1.0, 2.0]
    assert str(calls[0].url) == IDENTITY_URL
    assert calls[0].headers["Authorization"] == "Bearer at_1"


@pytest.mark.asyncio
async def test_identity_other_errors_fail_fast(no_sleep):
    client, calls = make_client(lambda req, n: httpx.Response(401), no_sleep)
    with pytest.raises(RedditOAuthError):
        await client.fetch_identity("at_1")
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_refresh_single_attempt(no_sleep):
    client, calls = make_client(lambda req, n: httpx.Response(503), no_sleep)
    with pytest.raises(RedditOAuthError) as info:
        await client.refresh_access_token("rt_1")
    assert len(calls) == 1
    assert info.value.retryable is True
    assert parse_qs(calls[0].content.decode())["grant_type"] == ["refresh_token"]
