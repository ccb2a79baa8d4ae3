"""Subscription status and feature access endpoints.

Both endpoints are readable without an active subscription: the
frontend uses them to decide where to send the user.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies import (
    get_db_session,
    get_entitlement,
    get_feature_service,
    get_usage_service,
    require_identity,
)
from app.core.security import Identity
from app.models.schemas import EntitlementRead, FeatureAccessRead, UsageRead
from app.services.entitlement_service import Entitlement
from app.services.feature_service import FeatureService, serialise_limits, tier_features
from app.services.usage_service import UsageService

router = APIRouter(tags=["subscription"])


@router.get("/subscription/status", response_model=EntitlementRead)
async def subscription_status(entitlement: Entitlement = Depends(get_entitlement)) -> EntitlementRead:
    return EntitlementRead(**entitlement.as_dict())


@router.get("/features", response_model=FeatureAccessRead)
async def feature_access(
    identity: Identity = Depends(require_identity),
    db: AsyncSession = Depends(get_db_session),
    features: FeatureService = Depends(get_feature_service),
    usage: UsageService = Depends(get_usage_service),
) -> FeatureAccessRead:
    """Tier, enabled features, limits and this month's usage for the caller."""
    tier = await features.resolve_tier(db, identity.id)
    row = await usage.get_month_row(db, identity.id)
    if row is not None:
        current = UsageRead.model_validate(row)
    else:
        current = UsageRead(reddit_accounts_count=await usage.count_reddit_accounts(db, identity.id))
    return FeatureAccessRead(
        tier=tier,
        features=tier_features(tier),
        usage_limits=serialise_limits(tier),
        usage=current,
    )
