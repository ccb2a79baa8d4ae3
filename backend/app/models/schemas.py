"""Pydantic schemas for request and response models.

These are the shapes that cross the API boundary.  They are kept
separate from the SQLAlchemy models so tokens and other internal columns
are never serialised by accident: :class:`RedditAccountRead`, for
example, deliberately has no token fields.
"""

from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .enums import EntitlementReason, OAuthStage, RouteDecision, SubscriptionTier, UserRole


# ---------------------------------------------------------------------------
# Identity / profile

class IdentityRead(BaseModel):
    id: str
    email: Optional[str] = None
    display_name: Optional[str] = None
    image_url: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class ProfileRead(BaseModel):
    id: str
    email: Optional[str] = None
    display_name: Optional[str] = None
    image_url: Optional[str] = None
    role: UserRole = UserRole.USER
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class CurrentUserResponse(BaseModel):
    """``/users/me``: the identity plus its mirrored profile (if the mirror succeeded)."""

    identity: IdentityRead
    profile: Optional[ProfileRead] = None


class DisplayNameUpdate(BaseModel):
    display_name: str = Field(min_length=1)

    @field_validator("display_name", mode="before")
    def sanitize_display_name(cls, v):
        from app.utils.sanitization import sanitize_display_name
        return sanitize_display_name(v) if v is not None else v


# ---------------------------------------------------------------------------
# Subscription gate / features

class EntitlementRead(BaseModel):
    granted: bool
    reason: EntitlementReason
    source: Optional[str] = None


class UsageRead(BaseModel):
    month_start: Optional[datetime] = None
    month_end: Optional[datetime] = None
    subreddit_analysis_count: int = 0
    reddit_accounts_count: int = 0

    model_config = ConfigDict(from_attributes=True)


class FeatureAccessRead(BaseModel):
    tier: SubscriptionTier
    features: List[str]
    # ``None`` means unlimited
    usage_limits: Dict[str, Optional[int]]
    usage: UsageRead


class RouteAuthorizationRead(BaseModel):
    decision: RouteDecision
    redirect_to: Optional[str] = None
    entitlement: Optional[EntitlementRead] = None


# ---------------------------------------------------------------------------
# Reddit accounts / OAuth

class RedditAccountRead(BaseModel):
    id: int
    username: str
    is_active: bool
    token_expiry: datetime
    scope: List[str] = Field(default_factory=list)
    karma_score: int = 0
    link_karma: int = 0
    comment_karma: int = 0
    total_karma: int = 0
    avatar_url: Optional[str] = None
    is_gold: bool = False
    is_mod: bool = False
    verified: bool = False
    created_utc: Optional[datetime] = None
    last_used_at: Optional[datetime] = None
    posts_today: int = 0
    total_posts: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class RedditConnectResponse(BaseModel):
    authorize_url: str
    state: str


class RedditCallbackRequest(BaseModel):
    """POST body variant of the callback (the SPA forwards Reddit's query params)."""

    code: Optional[str] = None
    state: Optional[str] = None
    error: Optional[str] = None


class RedditCallbackResponse(BaseModel):
    stage: OAuthStage
    redirect: Optional[str] = None
    duplicate: bool = False
    account: Optional[RedditAccountRead] = None
    error: Optional[str] = None
    retry_url: Optional[str] = None


class DashboardSummary(BaseModel):
    profile: Optional[ProfileRead] = None
    tier: SubscriptionTier
    reddit_accounts: int
