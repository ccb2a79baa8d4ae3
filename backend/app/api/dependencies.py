"""Common dependencies for FastAPI routes.

Database access, identity resolution and the subscription-gated access
check live here so every router resolves them the same way.  Identity
verification itself is delegated to :mod:`app.core.security`; the
access policy is :func:`app.services.route_guard.decide_route`.
"""

from __future__ import annotations

import logging
from typing import AsyncGenerator, Optional

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.security import Identity, get_identity
from app.models.enums import RouteDecision
from app.services.entitlement_service import Entitlement, EntitlementService
from app.services.feature_service import FeatureService
from app.services.oauth_state import OAuthStateStore, get_state_store
from app.services.profile_service import ProfileSync
from app.services.reddit_callback import RedditOAuthCallback
from app.services.reddit_oauth import RedditOAuthClient
from app.services.route_guard import decide_route, has_checkout_success, redirect_target
from app.services.usage_service import UsageService

logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Shared resources

async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Alias for `get_db` to be imported in routers."""
    async for session in get_db():
        yield session


def get_profile_sync() -> ProfileSync:
    return ProfileSync()


def get_entitlement_service() -> EntitlementService:
    return EntitlementService()


def get_feature_service() -> FeatureService:
    return FeatureService()


def get_usage_service() -> UsageService:
    return UsageService()


def get_reddit_client() -> RedditOAuthClient:
    return RedditOAuthClient()


def get_callback_handler(
    store: OAuthStateStore = Depends(get_state_store),
    client: RedditOAuthClient = Depends(get_reddit_client),
    usage: UsageService = Depends(get_usage_service),
) -> RedditOAuthCallback:
    return RedditOAuthCallback(store=store, client=client, usage=usage)


# -----------------------------------------------------------------------------
# Identity

async def get_current_identity(
    identity: Optional[Identity] = Depends(get_identity),
    db: AsyncSession = Depends(get_db_session),
    profiles: ProfileSync = Depends(get_profile_sync),
) -> Optional[Identity]:
    """Resolve the identity and mirror it into ``profiles``.

    The mirror is best-effort: a failed sync is logged by ``ProfileSync``
    and the request carries on with the identity alone.
    """
    if identity is not None:
        await profiles.sync(db, identity)
    return identity


async def require_identity(identity: Optional[Identity] = Depends(get_current_identity)) -> Identity:
    if identity is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthenticated")
    return identity


async def get_entitlement(
    identity: Identity = Depends(require_identity),
    db: AsyncSession = Depends(get_db_session),
    gate: EntitlementService = Depends(get_entitlement_service),
) -> Entitlement:
    return await gate.check(db, identity.id)


# -----------------------------------------------------------------------------
# Protected routes

async def require_access(
    request: Request,
    identity: Optional[Identity] = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db_session),
    gate: EntitlementService = Depends(get_entitlement_service),
) -> Identity:
    """Apply the route guard to an API route.

    ``login_redirect`` becomes 401 and ``subscription_redirect`` becomes
    402 with the redirect target in the detail.
    """
    entitlement = await gate.check(db, identity.id) if identity is not None else None
    decision = decide_route(
        identity=identity,
        entitlement=entitlement,
        checkout_success=has_checkout_success(request.query_params, request.cookies),
        path=request.url.path,
    )
    if decision == RouteDecision.LOGIN_REDIRECT:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"redirect": redirect_target(decision)},
        )
    if decision == RouteDecision.SUBSCRIPTION_REDIRECT:
        logger.info("[access] %s has no subscription for %s", identity.id, request.url.path)
        raise HTTPException(
            status_code=status.HTTP_402_PAYMENT_REQUIRED,
            detail={"redirect": redirect_target(decision)},
        )
    return identity
