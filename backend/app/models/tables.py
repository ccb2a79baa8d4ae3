"""SQLAlchemy ORM models for the SubPirate API.

These models describe the relational tables the service reads and
writes: the local ``profiles`` mirror of the identity provider's users,
the two subscription tables, the read-only Stripe product/price lookup,
linked Reddit accounts and per-month usage statistics.

Identity ids are the identity provider's string ids (``user_...``), so
``user_id`` columns are plain strings rather than integer foreign keys.
"""

from __future__ import annotations

from sqlalchemy import (
    Column,
    Integer,
    String,
    DateTime,
    Boolean,
    Enum,
    JSON,
    UniqueConstraint,
)

from app.core.database import Base
from app.utils.helpers import utcnow
from .enums import UserRole


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class Profile(Base):
    """Local mirror of an identity, keyed by the identity provider's user id."""

    __tablename__ = "profiles"

    id = Column(String, primary_key=True)
    email = Column(String, nullable=True, index=True)
    display_name = Column(String, nullable=True)
    image_url = Column(String, nullable=True)
    role = Column(
        Enum(UserRole, values_callable=_enum_values, native_enum=False, length=16),
        nullable=False,
        default=UserRole.USER,
    )
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class Subscription(Base):
    """Legacy subscription table (checked first by the subscription gate)."""

    __tablename__ = "subscriptions"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, nullable=False, index=True)
    status = Column(String, nullable=False)
    plan_id = Column(String, nullable=True)
    current_period_start = Column(DateTime(timezone=True), nullable=True)
    current_period_end = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class CustomerSubscription(Base):
    """Stripe-backed subscription written by the billing webhook."""

    __tablename__ = "customer_subscriptions"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, nullable=False, index=True)
    stripe_customer_id = Column(String, nullable=False)
    stripe_subscription_id = Column(String, nullable=True, unique=True)
    stripe_price_id = Column(String, nullable=True)
    status = Column(String, nullable=False)
    trial_start = Column(DateTime(timezone=True), nullable=True)
    trial_end = Column(DateTime(timezone=True), nullable=True)
    current_period_start = Column(DateTime(timezone=True), nullable=True)
    current_period_end = Column(DateTime(timezone=True), nullable=True)
    cancel_at_period_end = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class StripeProduct(Base):
    """Synced Stripe product; its name determines the feature tier."""

    __tablename__ = "stripe_products"

    id = Column(Integer, primary_key=True, index=True)
    stripe_product_id = Column(String, unique=True, nullable=False)
    name = Column(String, nullable=False)
    active = Column(Boolean, default=True, nullable=False)


class StripePrice(Base):
    """Synced Stripe price referencing its product."""

    __tablename__ = "stripe_prices"

    id = Column(Integer, primary_key=True, index=True)
    stripe_price_id = Column(String, unique=True, nullable=False)
    stripe_product_id = Column(String, nullable=False, index=True)
    active = Column(Boolean, default=True, nullable=False)


class RedditAccount(Base):
    """A Reddit account linked through OAuth, with a profile snapshot."""

    __tablename__ = "reddit_accounts"
    __table_args__ = (UniqueConstraint("user_id", "username", name="uq_reddit_accounts_user_username"),)

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, nullable=False, index=True)
    username = Column(String, nullable=False)

    # Token pair
    access_token = Column(String, nullable=False)
    refresh_token = Column(String, nullable=False)
    token_expiry = Column(DateTime(timezone=True), nullable=False)
    scope = Column(JSON, nullable=False, default=list)
    is_active = Column(Boolean, default=True, nullable=False)
    last_used_at = Column(DateTime(timezone=True), nullable=True)

    # Karma breakdown
    karma_score = Column(Integer, default=0, nullable=False)
    link_karma = Column(Integer, default=0, nullable=False)
    comment_karma = Column(Integer, default=0, nullable=False)
    awardee_karma = Column(Integer, default=0, nullable=False)
    awarder_karma = Column(Integer, default=0, nullable=False)
    total_karma = Column(Integer, default=0, nullable=False)

    # Profile snapshot
    avatar_url = Column(String, nullable=True)
    is_gold = Column(Boolean, default=False, nullable=False)
    is_mod = Column(Boolean, default=False, nullable=False)
    verified = Column(Boolean, default=False, nullable=False)
    has_verified_email = Column(Boolean, default=False, nullable=False)
    created_utc = Column(DateTime(timezone=True), nullable=True)

    # Activity tracking
    last_post_check = Column(DateTime(timezone=True), nullable=True)
    last_karma_check = Column(DateTime(timezone=True), nullable=True)
    posts_today = Column(Integer, default=0, nullable=False)
    total_posts = Column(Integer, default=0, nullable=False)

    # Rate limiting
    rate_limit_remaining = Column(Integer, default=60, nullable=False)
    rate_limit_reset = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class UserUsageStats(Base):
    """Per-user usage counters for one calendar month."""

    __tablename__ = "user_usage_stats"
    __table_args__ = (UniqueConstraint("user_id", "month_start", name="uq_user_usage_stats_user_month"),)

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, nullable=False, index=True)
    month_start = Column(DateTime(timezone=True), nullable=False)
    month_end = Column(DateTime(timezone=True), nullable=False)
    subreddit_analysis_count = Column(Integer, default=0, nullable=False)
    reddit_accounts_count = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)
