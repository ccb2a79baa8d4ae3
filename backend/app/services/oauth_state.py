"""Ephemeral OAuth bookkeeping in Redis.

Two kinds of keys are kept:

``reddit:oauth:state:<user_id>``
    The CSRF ``state`` generated when the user started the connect flow.
``reddit:oauth:code:<code>``
    Marks an authorization code as consumed.  Claimed with ``SET NX`` so
    exactly one callback may redeem a code; the value is the ``state``
    the code arrived with, which lets a replay be recognised as the same
    submission.  A claim is released again when the exchange, the identity
    fetch or the write fails, so only linked codes stay consumed.
"""

from __future__ import annotations

import hashlib
import logging
from functools import lru_cache
from typing import Optional

from redis import asyncio as aioredis

from app.core.config import settings

logger = logging.getLogger(__name__)

STATE_KEY = "reddit:oauth:state:{user_id}"
CODE_KEY = "reddit:oauth:code:{digest}"


def _code_key(code: str) -> str:
    # Codes are bearer secrets; only a digest is stored
    return CODE_KEY.format(digest=hashlib.sha256(code.encode("utf-8")).hexdigest())


class OAuthStateStore:
    def __init__(
        self,
        client: "aioredis.Redis",
        state_ttl: Optional[int] = None,
        code_ttl: Optional[int] = None,
    ):
        self.client = client
        self.state_ttl = state_ttl or settings.REDDIT_OAUTH_STATE_TTL_SECONDS
        self.code_ttl = code_ttl or settings.REDDIT_CODE_REPLAY_TTL_SECONDS

    async def stash_state(self, user_id: str, state: str) -> None:
        await self.client.set(STATE_KEY.format(user_id=user_id), state, ex=self.state_ttl)

    async def read_state(self, user_id: str) -> Optional[str]:
        return await self.client.get(STATE_KEY.format(user_id=user_id))

    async def clear_state(self, user_id: str) -> None:
        await self.client.delete(STATE_KEY.format(user_id=user_id))

    async def consumed_state(self, code: str) -> Optional[str]:
        """The ``state`` a code was consumed with, or ``None`` if unconsumed."""
        return await self.client.get(_code_key(code))

    async def claim_code(self, code: str, state: str) -> bool:
        """Atomically mark ``code`` consumed.  False when someone else got there first."""
        return bool(await self.client.set(_code_key(code), state, nx=True, ex=self.code_ttl))

    async def release_code(self, code: str) -> None:
        """Forget a claim whose redemption failed so the code can be retried."""
        await self.client.delete(_code_key(code))


@lru_cache(maxsize=1)
def _get_redis_client() -> "aioredis.Redis":
    """Return a cached async Redis client built from ``REDIS_URL``."""
    return aioredis.from_url(settings.REDIS_URL, decode_responses=True)


def get_state_store() -> OAuthStateStore:
    """FastAPI dependency returning the Redis-backed store."""
    return OAuthStateStore(_get_redis_client())


__all__ = ["OAuthStateStore", "get_state_store"]
