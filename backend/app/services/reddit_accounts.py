"""Linked Reddit accounts.

Listing, and the opportunistic access-token refresh.  Tokens are
refreshed when an account is read close to expiry, never on a schedule.
"""

from __future__ import annotations

import datetime as dt
import logging
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.observability import sentry_metric_inc
from app.models.tables import RedditAccount
from app.services.reddit_oauth import RedditOAuthClient, RedditOAuthError
from app.utils.helpers import as_utc, utcnow

logger = logging.getLogger(__name__)

REFRESH_MARGIN = dt.timedelta(minutes=5)


def needs_refresh(account: RedditAccount, now: Optional[dt.datetime] = None) -> bool:
    expiry = as_utc(account.token_expiry)
    return expiry is None or expiry <= (now or utcnow()) + REFRESH_MARGIN


class RedditAccountService:
    async def list_active(self, db: AsyncSession, user_id: str) -> List[RedditAccount]:
        result = await db.execute(
            select(RedditAccount)
            .where(RedditAccount.user_id == user_id, RedditAccount.is_active.is_(True))
            .order_by(RedditAccount.created_at)
        )
        return list(result.scalars().all())

    async def refresh_token(
        self,
        db: AsyncSession,
        account_id: int,
        client: Optional[RedditOAuthClient] = None,
    ) -> Optional[RedditAccount]:
        """Refresh one account's access token.

        Returns the updated account, or ``None`` when the account is gone,
        inactive, or Reddit rejected the refresh token.  A rejected account
        is deactivated so it is no longer listed or queued for refresh.
        Retryable failures (5xx, network) are re-raised so the caller can retry.
        """
        account = await db.get(RedditAccount, account_id)
        if account is None or not account.is_active:
            logger.info("[reddit] skipping refresh for missing/inactive account %s", account_id)
            return None
        client = client or RedditOAuthClient()
        try:
            tokens = await client.refresh_access_token(account.refresh_token)
        except RedditOAuthError as exc:
            sentry_metric_inc("reddit.token.refresh.error", tags={"retryable": str(exc.retryable).lower()})
            if exc.retryable:
                raise
            # Refresh token revoked: the user has to reconnect, which reactivates the row
            logger.warning("[reddit] refresh rejected for u/%s, deactivating: %s", account.username, exc.message)
            account.is_active = False
            account.updated_at = utcnow()
            await db.commit()
            return None

        now = utcnow()
        account.access_token = tokens["access_token"]
        # Reddit usually omits refresh_token on refresh; keep the one we have
        account.refresh_token = tokens.get("refresh_token") or account.refresh_token
        account.token_expiry = now + dt.timedelta(seconds=int(tokens.get("expires_in") or 3600))
        if tokens.get("scope"):
            account.scope = tokens["scope"].split()
        account.updated_at = now
        await db.commit()
        await db.refresh(account)
        logger.info("[reddit] refreshed token for u/%s", account.username)
        sentry_metric_inc("reddit.token.refresh.success")
        return account


__all__ = ["REFRESH_MARGIN", "RedditAccountService", "needs_refresh"]
