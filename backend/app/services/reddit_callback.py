"""Reddit OAuth callback handling.

Drives one callback through ``idle -> exchanging_code -> fetching_user ->
persisting -> done``.  Any failure moves to the absorbing ``error``
state and is reported to the caller; nothing is retried here beyond what
:class:`~app.services.reddit_oauth.RedditOAuthClient` already does.

A replayed submission (same code, same state) and Reddit's
``invalid_grant`` answer are both treated as benign duplicates: the
outcome is ``done`` with ``duplicate=True``, no error and no write.
"""

from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from redis.exceptions import RedisError
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import upsert
from app.core.observability import sentry_breadcrumb, sentry_metric_inc
from app.models.enums import OAuthStage
from app.models.tables import RedditAccount
from app.services.oauth_state import OAuthStateStore
from app.services.reddit_oauth import RedditCodeAlreadyUsed, RedditOAuthClient, RedditOAuthError
from app.services.usage_service import UsageService
from app.utils.helpers import from_epoch, mask_code, utcnow

logger = logging.getLogger(__name__)

INVALID_STATE = "Invalid state parameter"


@dataclass
class CallbackOutcome:
    stage: OAuthStage = OAuthStage.IDLE
    duplicate: bool = False
    error: Optional[str] = None
    account: Optional[RedditAccount] = None
    transitions: List[OAuthStage] = field(default_factory=lambda: [OAuthStage.IDLE])

    @property
    def ok(self) -> bool:
        return self.stage == OAuthStage.DONE


def account_values(user_id: str, tokens: Dict[str, Any], reddit_user: Dict[str, Any], now: dt.datetime) -> Dict[str, Any]:
    """Build the ``reddit_accounts`` row from the token response and ``/me`` payload."""
    link_karma = int(reddit_user.get("link_karma") or 0)
    comment_karma = int(reddit_user.get("comment_karma") or 0)
    icon = reddit_user.get("icon_img") or ""
    avatar_url = icon.split("?", 1)[0] or reddit_user.get("snoovatar_img") or None
    scope = tokens.get("scope") or ""
    return {
        "user_id": user_id,
        "username": reddit_user["name"],
        "access_token": tokens["access_token"],
        "refresh_token": tokens["refresh_token"],
        "token_expiry": now + dt.timedelta(seconds=int(tokens.get("expires_in") or 3600)),
        "scope": scope.split() if isinstance(scope, str) else list(scope),
        "is_active": True,
        "last_used_at": now,
        "karma_score": link_karma + comment_karma,
        "link_karma": link_karma,
        "comment_karma": comment_karma,
        "awardee_karma": int(reddit_user.get("awardee_karma") or 0),
        "awarder_karma": int(reddit_user.get("awarder_karma") or 0),
        "total_karma": int(reddit_user.get("total_karma") or 0),
        "avatar_url": avatar_url,
        "is_gold": bool(reddit_user.get("is_gold")),
        "is_mod": bool(reddit_user.get("is_mod")),
        "verified": bool(reddit_user.get("verified")),
        "has_verified_email": bool(reddit_user.get("has_verified_email")),
        "created_utc": from_epoch(reddit_user.get("created_utc")),
        "last_post_check": now,
        "last_karma_check": now,
        "posts_today": 0,
        "total_posts": 0,
        "rate_limit_remaining": 60,
        "rate_limit_reset": now + dt.timedelta(seconds=60),
        "updated_at": now,
    }


class RedditOAuthCallback:
    def __init__(
        self,
        store: OAuthStateStore,
        client: Optional[RedditOAuthClient] = None,
        usage: Optional[UsageService] = None,
    ):
        self.store = store
        self.client = client or RedditOAuthClient()
        self.usage = usage or UsageService()

    # -- state machine plumbing ---------------------------------------
    def _enter(self, outcome: CallbackOutcome, stage: OAuthStage) -> None:
        outcome.stage = stage
        outcome.transitions.append(stage)
        sentry_breadcrumb(category="reddit.oauth", message=f"callback:{stage.value}")

    def _fail(self, outcome: CallbackOutcome, message: str) -> CallbackOutcome:
        logger.error("[reddit] OAuth callback failed at %s: %s", outcome.stage.value, message)
        sentry_metric_inc("reddit.oauth.callback.error", tags={"stage": outcome.stage.value})
        self._enter(outcome, OAuthStage.ERROR)
        outcome.error = message
        return outcome

    async def _release(self, code: str) -> None:
        try:
            await self.store.release_code(code)
        except RedisError as exc:
            logger.warning("[reddit] could not release code %s: %s", mask_code(code), exc)

    def _duplicate(self, outcome: CallbackOutcome, why: str) -> CallbackOutcome:
        logger.warning("[reddit] ignoring duplicate OAuth callback: %s", why)
        sentry_metric_inc("reddit.oauth.callback.duplicate")
        self._enter(outcome, OAuthStage.DONE)
        outcome.duplicate = True
        return outcome

    # -- entry point ----------------------------------------------------
    async def handle(
        self,
        db: AsyncSession,
        user_id: str,
        code: Optional[str],
        state: Optional[str],
        error: Optional[str] = None,
    ) -> CallbackOutcome:
        outcome = CallbackOutcome()

        if error:
            return self._fail(outcome, f"Reddit OAuth error: {error}")
        if not code:
            return self._fail(outcome, "No authorization code received from Reddit")
        code = code.split("#", 1)[0]

        try:
            consumed_with = await self.store.consumed_state(code)
            if consumed_with is not None:
                if state and consumed_with == state:
                    return self._duplicate(outcome, f"code {mask_code(code)} already consumed")
                return self._fail(outcome, INVALID_STATE)
            stashed = await self.store.read_state(user_id)
            if not state or stashed is None or state != stashed:
                return self._fail(outcome, INVALID_STATE)
            if not await self.store.claim_code(code, state):
                return self._duplicate(outcome, f"code {mask_code(code)} claimed concurrently")
        except RedisError as exc:
            return self._fail(outcome, f"OAuth state unavailable: {exc}")

        self._enter(outcome, OAuthStage.EXCHANGING_CODE)
        try:
            tokens = await self.client.exchange_code(code)
        except RedditCodeAlreadyUsed:
            return self._duplicate(outcome, "Reddit reported invalid_grant")
        except RedditOAuthError as exc:
            await self._release(code)
            return self._fail(outcome, exc.message)

        self._enter(outcome, OAuthStage.FETCHING_USER)
        try:
            reddit_user = await self.client.fetch_identity(tokens["access_token"])
        except RedditOAuthError as exc:
            await self._release(code)
            return self._fail(outcome, exc.message)

        self._enter(outcome, OAuthStage.PERSISTING)
        try:
            outcome.account = await self._persist(db, user_id, tokens, reddit_user)
        except SQLAlchemyError as exc:
            await db.rollback()
            await self._release(code)
            return self._fail(outcome, f"Failed to store Reddit account: {exc}")

        try:
            await self.store.clear_state(user_id)
        except RedisError as exc:  # state expires on its own
            logger.warning("[reddit] could not clear OAuth state for %s: %s", user_id, exc)

        logger.info("[reddit] linked u/%s to %s", reddit_user["name"], user_id)
        sentry_metric_inc("reddit.oauth.callback.success")
        self._enter(outcome, OAuthStage.DONE)
        return outcome

    async def _persist(
        self,
        db: AsyncSession,
        user_id: str,
        tokens: Dict[str, Any],
        reddit_user: Dict[str, Any],
    ) -> RedditAccount:
        now = utcnow()
        await self.usage.ensure_month_row(db, user_id, when=now)
        values = account_values(user_id, tokens, reddit_user, now)
        await upsert(db, RedditAccount, values, conflict_cols=["user_id", "username"])
        await db.flush()
        await self.usage.record_reddit_accounts(db, user_id, when=now)
        await db.commit()
        result = await db.execute(
            select(RedditAccount)
            .where(RedditAccount.user_id == user_id, RedditAccount.username == values["username"])
            .execution_options(populate_existing=True)
        )
        return result.scalar_one()


__all__ = ["CallbackOutcome", "RedditOAuthCallback", "account_values"]
