"""Feature access: tiers, feature flags and usage limits.

This module centralises the tier matrix so API route handlers remain
thin.  A user's tier comes from their role (``admin``/``gift``) or from
the product behind their ``customer_subscriptions`` price; anything that
cannot be resolved falls back to ``free``.
"""

from __future__ import annotations

import logging
import math
from typing import Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.enums import ENTITLED_STATUSES, SubscriptionTier, UserRole
from app.models.tables import CustomerSubscription, Profile, StripePrice, StripeProduct

logger = logging.getLogger(__name__)

UNLIMITED = math.inf


class Feature:
    ANALYZE_SUBREDDIT = "analyze_subreddit"
    ANALYZE_UNLIMITED = "analyze_unlimited"
    CREATE_PROJECT = "create_project"
    ADVANCED_ANALYTICS = "advanced_analytics"
    EXPORT_DATA = "export_data"
    TEAM_COLLABORATION = "team_collaboration"
    CUSTOM_TRACKING = "custom_tracking"
    API_ACCESS = "api_access"
    PRIORITY_SUPPORT = "priority_support"
    DEDICATED_ACCOUNT = "dedicated_account"
    ADMIN_PANEL = "admin_panel"


_PRO_FEATURES = [
    Feature.ANALYZE_UNLIMITED,
    Feature.CREATE_PROJECT,
    Feature.ADVANCED_ANALYTICS,
    Feature.EXPORT_DATA,
    Feature.TEAM_COLLABORATION,
    Feature.CUSTOM_TRACKING,
    Feature.API_ACCESS,
    Feature.PRIORITY_SUPPORT,
]

TIER_FEATURES: Dict[SubscriptionTier, List[str]] = {
    SubscriptionTier.FREE: [Feature.ANALYZE_SUBREDDIT],
    SubscriptionTier.STARTER: [
        Feature.ANALYZE_SUBREDDIT,
        Feature.CREATE_PROJECT,
        Feature.EXPORT_DATA,
    ],
    SubscriptionTier.CREATOR: [
        Feature.ANALYZE_SUBREDDIT,
        Feature.CREATE_PROJECT,
        Feature.ADVANCED_ANALYTICS,
        Feature.CUSTOM_TRACKING,
        Feature.EXPORT_DATA,
        Feature.PRIORITY_SUPPORT,
    ],
    SubscriptionTier.PRO: list(_PRO_FEATURES),
    SubscriptionTier.AGENCY: _PRO_FEATURES + [Feature.DEDICATED_ACCOUNT],
    SubscriptionTier.ADMIN: [Feature.ADMIN_PANEL],
    # Gift users get Pro features
    SubscriptionTier.GIFT: list(_PRO_FEATURES),
}
# Admins get every feature any tier has
TIER_FEATURES[SubscriptionTier.ADMIN] = list(
    dict.fromkeys(feature for features in TIER_FEATURES.values() for feature in features)
)

USAGE_LIMITS: Dict[SubscriptionTier, Dict[str, float]] = {
    SubscriptionTier.FREE: {
        "subreddit_analysis_count": 3,
        "saved_subreddits": 10,
        "projects": 1,
        "reddit_accounts": 1,
    },
    SubscriptionTier.STARTER: {
        "subreddit_analysis_count": 10,
        "saved_subreddits": 25,
        "projects": 2,
        "reddit_accounts": 3,
    },
    SubscriptionTier.CREATOR: {
        "subreddit_analysis_count": 50,
        "saved_subreddits": 100,
        "projects": 5,
        "reddit_accounts": 10,
    },
    SubscriptionTier.PRO: {
        "subreddit_analysis_count": UNLIMITED,
        "saved_subreddits": 500,
        "projects": 10,
        "reddit_accounts": 25,
    },
    SubscriptionTier.AGENCY: {
        "subreddit_analysis_count": UNLIMITED,
        "saved_subreddits": UNLIMITED,
        "projects": UNLIMITED,
        "reddit_accounts": 100,
    },
    SubscriptionTier.ADMIN: {
        "subreddit_analysis_count": UNLIMITED,
        "saved_subreddits": UNLIMITED,
        "projects": UNLIMITED,
        "reddit_accounts": UNLIMITED,
    },
    SubscriptionTier.GIFT: {
        "subreddit_analysis_count": UNLIMITED,
        "saved_subreddits": 500,
        "projects": 10,
        "reddit_accounts": 25,
    },
}

# Substring -> tier, checked in order (admin/gift products take precedence).
_PRODUCT_NAME_TIERS = (
    ("admin", SubscriptionTier.ADMIN),
    ("gift", SubscriptionTier.GIFT),
    ("starter", SubscriptionTier.STARTER),
    ("creator", SubscriptionTier.CREATOR),
    ("pro", SubscriptionTier.PRO),
    ("agency", SubscriptionTier.AGENCY),
)


def tier_from_product_name(product_name: str | None) -> SubscriptionTier:
    name = (product_name or "").lower()
    for needle, tier in _PRODUCT_NAME_TIERS:
        if needle in name:
            return tier
    return SubscriptionTier.FREE


def tier_features(tier: SubscriptionTier) -> List[str]:
    return list(TIER_FEATURES.get(tier, TIER_FEATURES[SubscriptionTier.FREE]))


def is_within_usage_limit(tier: SubscriptionTier, metric: str, current_usage: int) -> bool:
    """True when ``current_usage`` is still below the tier's limit.

    Metrics without a defined limit, and unlimited metrics, always pass.
    """
    limit = USAGE_LIMITS.get(tier, {}).get(metric)
    if limit is None or limit == UNLIMITED:
        return True
    return current_usage < limit


def serialise_limits(tier: SubscriptionTier) -> Dict[str, Optional[int]]:
    """JSON-safe usage limits; ``None`` means unlimited."""
    return {
        metric: (None if limit == UNLIMITED else int(limit))
        for metric, limit in USAGE_LIMITS.get(tier, {}).items()
    }


class FeatureService:
    """Resolves a user's tier and the features/limits that come with it."""

    async def resolve_tier(self, db: AsyncSession, user_id: str) -> SubscriptionTier:
        try:
            role = (
                await db.execute(select(Profile.role).where(Profile.id == user_id))
            ).scalar_one_or_none()
            if role == UserRole.ADMIN:
                return SubscriptionTier.ADMIN
            if role == UserRole.GIFT:
                return SubscriptionTier.GIFT

            subscription = (
                await db.execute(
                    select(CustomerSubscription)
                    .where(CustomerSubscription.user_id == user_id)
                    .order_by(CustomerSubscription.updated_at.desc())
                    .limit(1)
                )
            ).scalar_one_or_none()
            if subscription is None:
                return SubscriptionTier.FREE
            if subscription.status not in {s.value for s in ENTITLED_STATUSES}:
                logger.info("[features] subscription for %s is not active: %s", user_id, subscription.status)
                return SubscriptionTier.FREE

            product_name = (
                await db.execute(
                    select(StripeProduct.name)
                    .join(StripePrice, StripePrice.stripe_product_id == StripeProduct.stripe_product_id)
                    .where(StripePrice.stripe_price_id == subscription.stripe_price_id)
                )
            ).scalar_one_or_none()
            if product_name is None:
                logger.warning(
                    "[features] price %s not found; %s defaults to free tier",
                    subscription.stripe_price_id, user_id,
                )
                return SubscriptionTier.FREE
            return tier_from_product_name(product_name)
        except SQLAlchemyError as exc:
            logger.error("[features] error resolving tier for %s: %s", user_id, exc)
            await db.rollback()
            return SubscriptionTier.FREE


__all__ = [
    "Feature",
    "FeatureService",
    "TIER_FEATURES",
    "USAGE_LIMITS",
    "is_within_usage_limit",
    "serialise_limits",
    "tier_features",
    "tier_from_product_name",
]
