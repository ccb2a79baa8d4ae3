"""Dramatiq task definitions for background processing.

Work that should not hold up a request, currently the opportunistic
Reddit token refresh, runs as Dramatiq actors on a Redis broker.  Start
a worker with:

```bash
dramatiq app.worker --processes 1 --threads 4
```

The broker URL comes from ``DRAMATIQ_BROKER_URL`` and defaults to
``REDIS_URL``.  With ``ENVIRONMENT=test`` a ``StubBroker`` is used so
importing this module never needs Redis.
"""

from __future__ import annotations

import asyncio
import logging

import dramatiq
from dramatiq.brokers.redis import RedisBroker
from dramatiq.brokers.stub import StubBroker
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from app.core.config import broker_url, settings
from app.core import database
from app.core.observability import sentry_breadcrumb
from app.services.reddit_accounts import RedditAccountService

logger = logging.getLogger(__name__)


def _build_broker():
    if (settings.ENVIRONMENT or "").lower() == "test":
        return StubBroker()
    redis_broker = RedisBroker(url=broker_url())
    logger.info("Dramatiq broker configured (%s)", type(redis_broker).__name__)
    return redis_broker


broker = _build_broker()
dramatiq.set_broker(broker)


async def _refresh_reddit_account(account_id: int) -> None:
    # Each worker thread runs its own event loop; connections stay unpooled
    engine = create_async_engine(database.engine.url, poolclass=NullPool)
    try:
        async with async_sessionmaker(engine, expire_on_commit=False)() as session:
            await RedditAccountService().refresh_token(session, account_id)
    finally:
        await engine.dispose()


# Exponential backoff between 5s and 1m
@dramatiq.actor(max_retries=3, min_backoff=5_000, max_backoff=60_000)
def refresh_reddit_account_token(account_id: int) -> None:
    """Refresh a linked account's access token close to expiry."""
    sentry_breadcrumb(category="reddit", message="token.refresh.start", data={"account_id": account_id})
    asyncio.run(_refresh_reddit_account(account_id))
