"""Enumeration types used throughout the SubPirate API.

Enumerations constrain the values stored in the database or passed
through the API: subscription statuses, profile roles, feature tiers and
the states of the Reddit OAuth callback.
"""

from enum import Enum


class SubscriptionStatus(str, Enum):
    """Billing provider subscription status as mirrored into our tables."""

    ACTIVE = "active"
    TRIALING = "trialing"
    PAST_DUE = "past_due"
    CANCELED = "canceled"
    INCOMPLETE = "incomplete"
    INCOMPLETE_EXPIRED = "incomplete_expired"
    UNPAID = "unpaid"


# Statuses that grant access to the application.
ENTITLED_STATUSES = (SubscriptionStatus.ACTIVE, SubscriptionStatus.TRIALING)


class UserRole(str, Enum):
    """Profile role.  ``admin`` and ``gift`` bypass the subscription gate."""

    USER = "user"
    ADMIN = "admin"
    GIFT = "gift"


class SubscriptionTier(str, Enum):
    """Feature tier derived from the subscribed product (or role)."""

    FREE = "free"
    STARTER = "starter"
    CREATOR = "creator"
    PRO = "pro"
    AGENCY = "agency"
    ADMIN = "admin"
    GIFT = "gift"


class EntitlementReason(str, Enum):
    """Why the subscription gate reached its decision."""

    SUBSCRIPTION = "subscription"
    ROLE_BYPASS = "role_bypass"
    FAIL_OPEN = "fail_open"
    NO_SUBSCRIPTION = "no_subscription"


class OAuthStage(str, Enum):
    """States of the Reddit OAuth callback.

    ``idle -> exchanging_code -> fetching_user -> persisting -> done``;
    ``error`` is absorbing and reachable from every non-terminal state.
    """

    IDLE = "idle"
    EXCHANGING_CODE = "exchanging_code"
    FETCHING_USER = "fetching_user"
    PERSISTING = "persisting"
    DONE = "done"
    ERROR = "error"


class RouteDecision(str, Enum):
    """Outcome of authorising a protected route."""

    LOADING = "loading"
    LOGIN_REDIRECT = "login_redirect"
    SUBSCRIPTION_REDIRECT = "subscription_redirect"
    RENDER = "render"
