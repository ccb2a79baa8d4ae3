"""Reddit account linking.

``GET /reddit/connect`` starts the OAuth flow, ``/auth/reddit/callback``
finishes it (GET for a direct redirect from Reddit, POST when the SPA
forwards the query parameters) and ``GET /reddit/accounts`` lists the
linked accounts.
"""

from __future__ import annotations

import logging
import secrets
from typing import List, Optional

from dramatiq.errors import DramatiqError
from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import JSONResponse
from redis.exceptions import RedisError
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies import (
    get_callback_handler,
    get_db_session,
    get_feature_service,
    get_reddit_client,
    get_usage_service,
    require_access,
    require_identity,
)
from app.core import tasks
from app.core.security import Identity
from app.models.schemas import (
    RedditAccountRead,
    RedditCallbackRequest,
    RedditCallbackResponse,
    RedditConnectResponse,
)
from app.services.feature_service import FeatureService, is_within_usage_limit
from app.services.oauth_state import OAuthStateStore, get_state_store
from app.services.reddit_accounts import RedditAccountService, needs_refresh
from app.services.reddit_callback import RedditOAuthCallback
from app.services.reddit_oauth import RedditOAuthClient
from app.services.usage_service import UsageService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["reddit"])

SUCCESS_REDIRECT = "/dashboard"
RETRY_URL = "/accounts"


@router.get("/reddit/connect", response_model=RedditConnectResponse)
async def connect_reddit_account(
    identity: Identity = Depends(require_access),
    db: AsyncSession = Depends(get_db_session),
    features: FeatureService = Depends(get_feature_service),
    usage: UsageService = Depends(get_usage_service),
    store: OAuthStateStore = Depends(get_state_store),
    client: RedditOAuthClient = Depends(get_reddit_client),
) -> RedditConnectResponse:
    """Return the Reddit authorize URL and remember its ``state`` for the callback."""
    tier = await features.resolve_tier(db, identity.id)
    connected = await usage.count_reddit_accounts(db, identity.id)
    if not is_within_usage_limit(tier, "reddit_accounts", connected):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Reddit account limit reached for the {tier.value} plan",
        )
    state = secrets.token_urlsafe(32)
    authorize_url = client.build_authorize_url(state)
    try:
        await store.stash_state(identity.id, state)
    except RedisError as exc:
        logger.error("[reddit] could not stash OAuth state for %s: %s", identity.id, exc)
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="OAuth state store unavailable")
    return RedditConnectResponse(authorize_url=authorize_url, state=state)


async def _run_callback(
    handler: RedditOAuthCallback,
    db: AsyncSession,
    identity: Identity,
    code: Optional[str],
    state: Optional[str],
    error: Optional[str],
) -> JSONResponse:
    outcome = await handler.handle(db, identity.id, code=code, state=state, error=error)
    if not outcome.ok:
        body = RedditCallbackResponse(stage=outcome.stage, error=outcome.error, retry_url=RETRY_URL)
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=body.model_dump(mode="json", exclude_none=True))
    body = RedditCallbackResponse(
        stage=outcome.stage,
        redirect=SUCCESS_REDIRECT,
        duplicate=outcome.duplicate,
        account=RedditAccountRead.model_validate(outcome.account) if outcome.account is not None else None,
    )
    return JSONResponse(status_code=status.HTTP_200_OK, content=body.model_dump(mode="json", exclude_none=True))


@router.get("/auth/reddit/callback", response_model=RedditCallbackResponse)
async def reddit_callback(
    code: Optional[str] = Query(default=None),
    state: Optional[str] = Query(default=None),
    error: Optional[str] = Query(default=None),
    identity: Identity = Depends(require_identity),
    db: AsyncSession = Depends(get_db_session),
    handler: RedditOAuthCallback = Depends(get_callback_handler),
) -> JSONResponse:
    return await _run_callback(handler, db, identity, code, state, error)


@router.post("/auth/reddit/callback", response_model=RedditCallbackResponse)
async def reddit_callback_post(
    payload: RedditCallbackRequest,
    identity: Identity = Depends(require_identity),
    db: AsyncSession = Depends(get_db_session),
    handler: RedditOAuthCallback = Depends(get_callback_handler),
) -> JSONResponse:
    return await _run_callback(handler, db, identity, payload.code, payload.state, payload.error)


@router.get("/reddit/accounts", response_model=List[RedditAccountRead])
async def list_reddit_accounts(
    identity: Identity = Depends(require_access),
    db: AsyncSession = Depends(get_db_session),
) -> List[RedditAccountRead]:
    """List the caller's active accounts (tokens are never returned).

    Accounts whose token is about to expire get a background refresh.
    """
    accounts = await RedditAccountService().list_active(db, identity.id)
    for account in accounts:
        if needs_refresh(account):
            try:
                tasks.refresh_reddit_account_token.send(account.id)
            except (DramatiqError, RedisError) as exc:
                logger.warning("[reddit] could not enqueue token refresh for %s: %s", account.id, exc)
    return [RedditAccountRead.model_validate(a) for a in accounts]
