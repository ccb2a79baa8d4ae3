"""Reddit OAuth client.

Thin async wrapper around Reddit's OAuth2 endpoints:

* building the authorize URL for the connect flow,
* exchanging an authorization code for a token pair,
* fetching the authenticated Reddit user,
* refreshing an access token.

Retry policy: the token exchange retries 5xx responses and transport
errors; the identity fetch retries 429 responses and transport errors.
Both cap at :data:`MAX_ATTEMPTS` attempts with exponential backoff
(``BASE_DELAY * 2**attempt``).  Client errors are never retried.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional
from urllib.parse import urlencode

import httpx

from app.core.config import settings
from app.utils.helpers import mask_code

logger = logging.getLogger(__name__)

AUTHORIZE_URL = "https://www.reddit.com/api/v1/authorize"
TOKEN_URL = "https://www.reddit.com/api/v1/access_token"
IDENTITY_URL = "https://oauth.reddit.com/api/v1/me"

OAUTH_SCOPES = (
    "identity",
    "read",
    "submit",
    "subscribe",
    "history",
    "mysubreddits",
    "privatemessages",
    "save",
    "vote",
    "edit",
    "flair",
    "report",
)

MAX_ATTEMPTS = 3
BASE_DELAY = 1.0  # seconds
BACKOFF_FACTOR = 2

Sleep = Callable[[float], Awaitable[Any]]


class RedditOAuthError(Exception):
    """A failed call to Reddit's OAuth endpoints."""

    def __init__(self, message: str, status_code: Optional[int] = None, retryable: bool = False):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.retryable = retryable


class RedditCodeAlreadyUsed(RedditOAuthError):
    """Reddit answered ``invalid_grant``: the code was already redeemed.

    Treated as a benign double-submit.  Reddit does not distinguish this
    from a revoked or expired code.
    """

    def __init__(self, message: str = "authorization code already used", status_code: Optional[int] = None):
        super().__init__(message, status_code=status_code, retryable=False)


def backoff_delay(attempt: int) -> float:
    """Delay before retry number ``attempt + 1`` (``attempt`` is zero-based)."""
    return BASE_DELAY * (BACKOFF_FACTOR ** attempt)


def _json_or_none(response: httpx.Response) -> Optional[Dict[str, Any]]:
    try:
        body = response.json()
    except ValueError:
        return None
    return body if isinstance(body, dict) else None


class RedditOAuthClient:
    """Async client for the Reddit OAuth2 flow.

    ``http`` and ``sleep`` are injectable so the retry behaviour can be
    exercised without a network or real delays.
    """

    def __init__(
        self,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        redirect_uri: Optional[str] = None,
        user_agent: Optional[str] = None,
        http: Optional[httpx.AsyncClient] = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self.client_id = client_id or settings.REDDIT_CLIENT_ID
        self.client_secret = client_secret or settings.REDDIT_CLIENT_SECRET
        self.redirect_uri = redirect_uri or settings.REDDIT_REDIRECT_URI
        self.user_agent = user_agent or settings.REDDIT_USER_AGENT
        self._http = http
        self._sleep = sleep

    # ------------------------------------------------------------------
    def _require_credentials(self) -> None:
        if not self.client_id or not self.client_secret:
            raise RedditOAuthError("Reddit client credentials are not configured properly")

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        kwargs.setdefault("timeout", 10.0)
        headers = {"User-Agent": self.user_agent, "Accept": "application/json"}
        headers.update(kwargs.pop("headers", {}))
        if self._http is not None:
            return await self._http.request(method, url, headers=headers, **kwargs)
        async with httpx.AsyncClient() as client:
            return await client.request(method, url, headers=headers, **kwargs)

    async def _wait(self, attempt: int, reason: str) -> None:
        delay = backoff_delay(attempt)
        logger.info("[reddit] retrying after %.1fs due to: %s", delay, reason)
        await self._sleep(delay)

    # ------------------------------------------------------------------
    def build_authorize_url(self, state: str) -> str:
        self._require_credentials()
        params = {
            "client_id": self.client_id,
            "response_type": "code",
            "state": state,
            "redirect_uri": self.redirect_uri,
            "duration": "permanent",
            "scope": " ".join(OAUTH_SCOPES),
        }
        return f"{AUTHORIZE_URL}?{urlencode(params)}"

    async def exchange_code(self, code: str) -> Dict[str, Any]:
        """Exchange an authorization code for ``access_token``/``refresh_token``.

        Raises:
            RedditCodeAlreadyUsed: Reddit reported ``invalid_grant``.
            RedditOAuthError: any other failure, after retries where allowed.
        """
        self._require_credentials()
        clean_code = code.split("#", 1)[0]
        data = {
            "grant_type": "authorization_code",
            "code": clean_code,
            "redirect_uri": self.redirect_uri,
        }
        logger.info("[reddit] token exchange code=%s redirect_uri=%s", mask_code(clean_code), self.redirect_uri)

        last_error: Optional[RedditOAuthError] = None
        for attempt in range(MAX_ATTEMPTS):
            try:
                response = await self._request(
                    "POST",
                    TOKEN_URL,
                    data=data,
                    auth=(self.client_id, self.client_secret),
                    headers={"Content-Type": "application/x-www-form-urlencoded"},
                )
            except httpx.TransportError as exc:
                last_error = RedditOAuthError(f"Network error during token exchange: {exc}", retryable=True)
            else:
                body = _json_or_none(response)
                if body is not None and body.get("error") == "invalid_grant":
                    logger.warning("[reddit] authorization code already used (status=%s)", response.status_code)
                    raise RedditCodeAlreadyUsed(status_code=response.status_code)
                if response.is_success:
                    if body is None:
                        raise RedditOAuthError("Invalid JSON response from Reddit", status_code=response.status_code)
                    if not body.get("access_token") or not body.get("refresh_token"):
                        raise RedditOAuthError(
                            "Invalid token response from Reddit: missing required tokens",
                            status_code=response.status_code,
                        )
                    return body
                message = (body or {}).get("message") or (body or {}).get("error") or response.text
                # Client errors (400/401/403 included) are final
                if response.status_code < 500:
                    raise RedditOAuthError(
                        f"Failed to exchange code for tokens: {message}",
                        status_code=response.status_code,
                    )
                last_error = RedditOAuthError(
                    f"Failed to exchange code for tokens: {message}",
                    status_code=response.status_code,
                    retryable=True,
                )
            if attempt < MAX_ATTEMPTS - 1:
                await self._wait(attempt, last_error.message)
        assert last_error is not None
        raise last_error

    async def fetch_identity(self, access_token: str) -> Dict[str, Any]:
        """Return the ``/api/v1/me`` payload for ``access_token``."""
        last_error: Optional[RedditOAuthError] = None
        for attempt in range(MAX_ATTEMPTS):
            try:
                response = await self._request(
                    "GET",
                    IDENTITY_URL,
                    headers={"Authorization": f"Bearer {access_token}"},
                )
            except httpx.TransportError as exc:
                last_error = RedditOAuthError(f"Network error fetching Reddit user: {exc}", retryable=True)
            else:
                if response.is_success:
                    body = _json_or_none(response)
                    if body is None or not body.get("name"):
                        raise RedditOAuthError("Invalid Reddit user info response", status_code=response.status_code)
                    return body
                if response.status_code != 429:
                    raise RedditOAuthError("Failed to get Reddit user info", status_code=response.status_code)
                last_error = RedditOAuthError("Reddit rate limit exceeded", status_code=429, retryable=True)
            if attempt < MAX_ATTEMPTS - 1:
                await self._wait(attempt, last_error.message)
        assert last_error is not None
        raise last_error

    async def refresh_access_token(self, refresh_token: str) -> Dict[str, Any]:
        """Trade a refresh token for a new access token (single attempt)."""
        self._require_credentials()
        try:
            response = await self._request(
                "POST",
                TOKEN_URL,
                data={"grant_type": "refresh_token", "refresh_token": refresh_token},
                auth=(self.client_id, self.client_secret),
                headers={"Content-Type": "application/x-www-form-urlencoded"},
            )
        except httpx.TransportError as exc:
            raise RedditOAuthError(f"Network error refreshing token: {exc}", retryable=True) from exc
        body = _json_or_none(response)
        if not response.is_success or body is None or not body.get("access_token"):
            raise RedditOAuthError(
                f"Failed to refresh token: {response.text}",
                status_code=response.status_code,
                retryable=response.status_code >= 500,
            )
        return body


__all__ = [
    "OAUTH_SCOPES",
    "MAX_ATTEMPTS",
    "RedditCodeAlreadyUsed",
    "RedditOAuthClient",
    "RedditOAuthError",
    "backoff_delay",
]
