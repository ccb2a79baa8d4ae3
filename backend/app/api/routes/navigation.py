"""Route authorisation for the frontend and the protected dashboard summary."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies import (
    get_current_identity,
    get_db_session,
    get_entitlement_service,
    get_feature_service,
    get_usage_service,
    require_access,
)
from app.core.config import is_development
from app.core.security import Identity
from app.models.schemas import DashboardSummary, EntitlementRead, ProfileRead, RouteAuthorizationRead
from app.models.tables import Profile
from app.services.entitlement_service import EntitlementService
from app.services.feature_service import FeatureService
from app.services.route_guard import CHECKOUT_COOKIE, decide_route, has_checkout_success, redirect_target
from app.services.usage_service import UsageService

router = APIRouter(tags=["navigation"])

CHECKOUT_COOKIE_MAX_AGE = 60 * 60


@router.get("/routes/authorize", response_model=RouteAuthorizationRead)
async def authorize_route(
    request: Request,
    response: Response,
    path: Optional[str] = Query(default=None),
    identity: Optional[Identity] = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db_session),
    gate: EntitlementService = Depends(get_entitlement_service),
) -> RouteAuthorizationRead:
    """Tell the frontend whether ``path`` may render, or where to send the user."""
    entitlement = await gate.check(db, identity.id) if identity is not None else None
    if request.query_params.get("checkout") == "success":
        # Persist the signal across reloads
        response.set_cookie(
            CHECKOUT_COOKIE,
            "true",
            max_age=CHECKOUT_COOKIE_MAX_AGE,
            httponly=True,
            samesite="lax",
            secure=not is_development(),
        )
    decision = decide_route(
        identity=identity,
        entitlement=entitlement,
        checkout_success=has_checkout_success(request.query_params, request.cookies),
        path=path,
    )
    return RouteAuthorizationRead(
        decision=decision,
        redirect_to=redirect_target(decision),
        entitlement=EntitlementRead(**entitlement.as_dict()) if entitlement is not None else None,
    )


@router.get("/dashboard/summary", response_model=DashboardSummary)
async def dashboard_summary(
    identity: Identity = Depends(require_access),
    db: AsyncSession = Depends(get_db_session),
    features: FeatureService = Depends(get_feature_service),
    usage: UsageService = Depends(get_usage_service),
) -> DashboardSummary:
    profile = await db.get(Profile, identity.id)
    return DashboardSummary(
        profile=ProfileRead.model_validate(profile) if profile is not None else None,
        tier=await features.resolve_tier(db, identity.id),
        reddit_accounts=await usage.count_reddit_accounts(db, identity.id),
    )
